from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from workbench_preprocessor.modifiers import (
    AccessIdentifierValidator,
    FieldDescriptionSemicolonEscaper,
    FieldModelConfigError,
    FieldModelMapping,
    FieldModelModifier,
    FileExtensionModifier,
    ParentIdModifier,
    RowContext,
)
from workbench_preprocessor.modifiers.field_description import ensure_wrapped_in_quotes, escape_semicolons
from workbench_preprocessor.modifiers.field_model import normalize_extension


def context(**cells: str) -> RowContext:
    return RowContext.snapshot(list(cells.keys()), list(cells.values()))


class RowContextTests(unittest.TestCase):
    def test_get_variants(self):
        row = context(accessIdentifier=" 2024_19_01_001 ", file_extension="#VALUE!", file_extention=" pdf ")
        self.assertEqual(row.get("accessIdentifier"), " 2024_19_01_001 ")
        self.assertIsNone(row.get("missing"))
        self.assertEqual(row.get_or_empty("accessIdentifier"), "2024_19_01_001")
        self.assertEqual(row.get_or_empty("missing"), "")
        self.assertEqual(row.get_first_non_empty(["file_extension", "file_extention"]), "pdf")
        self.assertIsNone(row.get_first_non_empty(["file_extension", "missing"]))

    def test_file_extension_prefers_correct_spelling(self):
        row = context(file_extension="tif", file_extention="pdf")
        self.assertEqual(row.file_extension(), "tif")

    def test_short_row_reads_as_missing(self):
        row = RowContext.snapshot(["a", "b"], ["1"])
        self.assertIsNone(row.get("b"))


class AccessIdentifierValidatorTests(unittest.TestCase):
    def setUp(self):
        self.modifier = AccessIdentifierValidator()
        self.row = context()

    def test_container_suffixes_and_empty_are_invalid(self):
        for value in ("2024_19_01_00", "2024_19_01_000", "", "   ", "#VALUE!"):
            self.assertFalse(self.modifier.validate(value, self.row), value)

    def test_item_identifier_is_valid(self):
        self.assertTrue(self.modifier.validate("2024_19_01_001", self.row))
        self.assertTrue(self.modifier.validate("2024_19_01_100", self.row))

    def test_modify_normalizes(self):
        self.assertEqual(self.modifier.modify(" 2024_19_01_001 ", self.row), "2024_19_01_001")


class ParentIdModifierTests(unittest.TestCase):
    def setUp(self):
        self.modifier = ParentIdModifier()

    def test_strips_last_segment(self):
        row = context(accessIdentifier="2024_19_01_001", parent_id="")
        self.assertTrue(self.modifier.validate("", row))
        self.assertEqual(self.modifier.modify("", row), "2024_19_01")

    def test_identifier_without_underscore_is_unchanged(self):
        row = context(accessIdentifier="ABC123", parent_id="")
        self.assertEqual(self.modifier.modify("", row), "ABC123")

    def test_requires_access_identifier(self):
        row = context(accessIdentifier="#VALUE!", parent_id="")
        self.assertFalse(self.modifier.validate("", row))


class FileExtensionModifierTests(unittest.TestCase):
    def setUp(self):
        self.modifier = FileExtensionModifier()

    def test_builds_path_from_parent_and_extension(self):
        row = context(accessIdentifier="2024_19_01_001", file="document", file_extension="pdf")
        self.assertTrue(self.modifier.validate("document", row))
        self.assertEqual(self.modifier.modify("document", row), "2024_19_01/document.pdf")

    def test_drops_existing_extension(self):
        row = context(accessIdentifier="2024_19_01_001", file="document.old", file_extension="pdf")
        self.assertEqual(self.modifier.modify("document.old", row), "2024_19_01/document.pdf")

    def test_uses_misspelled_extension_column(self):
        row = context(accessIdentifier="2024_19_01_002", file="image", file_extention="jpg")
        self.assertEqual(self.modifier.modify("image", row), "2024_19_01/image.jpg")

    def test_invalid_without_any_required_part(self):
        self.assertFalse(self.modifier.validate("", context(accessIdentifier="2024_19_01_001", file_extension="pdf")))
        self.assertFalse(self.modifier.validate("doc", context(accessIdentifier="2024_19_01_001", file_extension="")))
        self.assertFalse(self.modifier.validate("doc", context(accessIdentifier="", file_extension="pdf")))


class FieldDescriptionTests(unittest.TestCase):
    def test_escapes_bare_semicolons_only(self):
        self.assertEqual(escape_semicolons("a;b"), "a\\;b")
        self.assertEqual(escape_semicolons("a\\;b"), "a\\;b")
        self.assertEqual(escape_semicolons("a;;b"), "a\\;\\;b")

    def test_wraps_in_quotes(self):
        self.assertEqual(ensure_wrapped_in_quotes(""), '""')
        self.assertEqual(ensure_wrapped_in_quotes("plain"), '"plain"')
        self.assertEqual(ensure_wrapped_in_quotes('"already"'), '"already"')
        self.assertEqual(ensure_wrapped_in_quotes('say "hi"'), '"say ""hi"""')
        self.assertEqual(ensure_wrapped_in_quotes('"'), '""""')

    def test_modify_escapes_then_wraps_and_is_stable(self):
        modifier = FieldDescriptionSemicolonEscaper()
        row = context()
        once = modifier.modify("maps; letters", row)
        self.assertEqual(once, '"maps\\; letters"')
        self.assertEqual(modifier.modify(once, row), once)
        self.assertTrue(modifier.validate("anything", row))


class FieldModelTests(unittest.TestCase):
    def test_default_mapping(self):
        mapping = FieldModelMapping.from_default_config()
        self.assertEqual(mapping.model_for_extension("jpg"), "Image")
        self.assertEqual(mapping.model_for_extension(".JPG"), "Image")
        self.assertEqual(mapping.model_for_extension("mp3"), "Audio")
        self.assertEqual(mapping.model_for_extension("pdf"), "Digital Document")
        self.assertEqual(mapping.model_for_extension("unknown"), "Binary")
        self.assertEqual(mapping.model_for_extension(""), "Binary")

    def test_normalize_extension(self):
        self.assertEqual(normalize_extension(" .JPG "), "jpg")

    def test_extension_lookup_beats_categories(self):
        mapping = FieldModelMapping.from_toml_str(
            """
            [extension_lookup]
            pdf = "Paged Content"

            [default]
            model = "Generic"

            [document]
            model = "Digital Document"
            extensions = ["pdf", "docx"]

            [other]
            model = "Other"
            extensions = ["docx"]
            """
        )
        self.assertEqual(mapping.model_for_extension("pdf"), "Paged Content")
        self.assertEqual(mapping.model_for_extension("docx"), "Digital Document")
        self.assertEqual(mapping.model_for_extension("zip"), "Generic")

    def test_missing_default_falls_back_to_binary(self):
        mapping = FieldModelMapping.from_toml_str('[image]\nmodel = "Image"\nextensions = ["png"]\n')
        self.assertEqual(mapping.default_model, "Binary")

    def test_malformed_configuration_raises(self):
        with self.assertRaises(FieldModelConfigError):
            FieldModelMapping.from_toml_str("[image\nmodel = ")
        with self.assertRaises(FieldModelConfigError):
            FieldModelMapping.from_toml_str('[image]\nextensions = ["png"]\n')
        with self.assertRaises(FieldModelConfigError):
            FieldModelMapping.from_toml_str('[image]\nmodel = "Image"\nextensions = "png"\n')
        with self.assertRaises(FieldModelConfigError):
            FieldModelMapping.from_toml_path(Path(tempfile.gettempdir()) / "does-not-exist-field-model.toml")

    def test_from_toml_path(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "models.toml"
            path.write_text('[extension_lookup]\ntif = "Image"\n', encoding="utf-8")
            mapping = FieldModelMapping.from_toml_path(path)
        self.assertEqual(mapping.model_for_extension("TIF"), "Image")

    def test_modifier_replaces_value_from_row_extension(self):
        modifier = FieldModelModifier()
        self.assertEqual(modifier.modify("", context(file_extension="mp3")), "Audio")
        self.assertEqual(modifier.modify(" Image ", context(file_extension="jpg")), "Image")
        self.assertEqual(modifier.modify("Image", context(file_extension="")), "Binary")
        self.assertTrue(modifier.validate("", context()))


if __name__ == "__main__":
    unittest.main()
