import re
import pathlib
from setuptools import setup, find_packages


BASE_PATH = pathlib.Path(__file__).parent
try:
    version = re.findall(r"""^__version__ = "([^']+)"\r?$""",
                         (BASE_PATH / "src" / "aioftps" / "__init__.py").read_text(),
                         re.M)[0]
except IndexError:
    raise RuntimeError("Unable to determine version.")


setup(
    name="aioftps",
    version=version,
    description=("ftp over implicit tls client for asyncio"),
    long_description=(BASE_PATH / "README.rst").read_text(),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3",
        "Topic :: Internet :: File Transfer Protocol (FTP)",
        "Framework :: AsyncIO",
    ],
    license="Apache 2",
    package_dir={"": "src"},
    packages=find_packages("src"),
    python_requires=">= 3.10",
    install_requires=[
        "typing_extensions >= 4.0; python_version < '3.11'",
    ],
    extras_require={
        "tests": [
            "pytest",
            "pytest-asyncio",
            "pytest-mock",
            "async_timeout >= 4.0.0",
            "trustme",
        ],
    },
    entry_points={
        "console_scripts": ["aioftps = aioftps.__main__:main"],
    },
    include_package_data=True,
)
