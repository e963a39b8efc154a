"""
Setup script for Warehouse Loading Library.
"""

from setuptools import setup, find_packages

# Read the README file
def read_readme():
    with open("README.md", "r", encoding="utf-8") as fh:
        return fh.read()

# Read requirements
def read_requirements():
    with open("requirements.txt", "r", encoding="utf-8") as fh:
        return [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="warehouse-loading",
    version="1.0.0",
    author="Data Engineering Team",
    author_email="data-engineering@company.com",
    description="Incremental fact loading and SCD Type 2 dimension snapshots for Delta Lake warehouses",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    url="https://github.com/company/warehouse-loading",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    classifiers=[
        "Development Status :: 5 - Production/Stable",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: Database",
        "Topic :: Scientific/Engineering :: Information Analysis",
    ],
    python_requires=">=3.11",
    install_requires=read_requirements(),
    extras_require={
        "dev": [
            "pytest>=6.0.0",
            "pytest-cov>=2.12.0",
            "pytest-mock>=3.6.0",
            "flake8>=3.9.0",
            "black>=21.0.0",
            "mypy>=0.910",
        ],
    },
    entry_points={
        "console_scripts": [
            "warehouse-loading=libraries.warehouse_loading.cli:main",
        ],
    },
    include_package_data=True,
    zip_safe=False,
    keywords="delta, spark, scd, snapshot, incremental, data-engineering, etl",
    project_urls={
        "Bug Reports": "https://github.com/company/warehouse-loading/issues",
        "Source": "https://github.com/company/warehouse-loading",
    },
)
