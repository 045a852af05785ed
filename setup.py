from setuptools import setup


setup(
    name="trucktalk-connect",
    version="0.3.0",
    description="Header mapping, validation and normalization for trucking load spreadsheets",
    packages=["trucktalk"],
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "requests",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "trucktalk=trucktalk.cli:main",
        ]
    },
)
