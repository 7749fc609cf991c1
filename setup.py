# setup.py
from setuptools import setup, find_packages

setup(
    name="recurbook",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "python-dateutil",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "recurbook=recurbook.main:run_wizard",
        ],
    },
)
