from setuptools import setup, find_packages

setup(
    name="esimport",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "requests>=2.28.1",
        "opensearch-py>=2.0.0",
        "python-dotenv>=0.21.0",
        "PyYAML>=6.0",
        "tqdm>=4.64.1",
        "pydantic>=2.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    python_requires=">=3.8",
    entry_points={
        "console_scripts": [
            "esimport=esimport.main:main",
        ],
    },
)
