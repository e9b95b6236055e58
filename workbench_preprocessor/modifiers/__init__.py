from workbench_preprocessor.modifiers.access_identifier import AccessIdentifierValidator
from workbench_preprocessor.modifiers.base import ColumnModifier, RowContext
from workbench_preprocessor.modifiers.field_description import FieldDescriptionSemicolonEscaper
from workbench_preprocessor.modifiers.field_model import FieldModelConfigError, FieldModelMapping, FieldModelModifier
from workbench_preprocessor.modifiers.file_extension import FileExtensionModifier
from workbench_preprocessor.modifiers.parent_id import ParentIdModifier

__all__ = [
    "AccessIdentifierValidator",
    "ColumnModifier",
    "FieldDescriptionSemicolonEscaper",
    "FieldModelConfigError",
    "FieldModelMapping",
    "FieldModelModifier",
    "FileExtensionModifier",
    "ParentIdModifier",
    "RowContext",
]
