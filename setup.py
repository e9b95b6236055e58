from setuptools import setup


setup(
    name="workbench-preprocessor",
    version="0.3.0",
    description="Clean, validate and summarise archival asset exports for Islandora Workbench",
    packages=["workbench_preprocessor", "workbench_preprocessor.modifiers"],
    package_data={
        "workbench_preprocessor.modifiers": ["field_model_mappings.toml"],
    },
    include_package_data=True,
    python_requires=">=3.11",
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "streamlit",
        "requests",
    ],
    entry_points={
        "console_scripts": [
            "workbench-preprocessor=workbench_preprocessor.cli:main",
        ]
    },
)
