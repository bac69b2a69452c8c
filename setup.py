from pathlib import Path

from setuptools import setup, find_packages

HERE = Path(__file__).resolve().parent

setup(
    name="vmevc",
    version="0.4.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[l.strip() for l in (HERE / "requirements.txt").read_text(encoding="utf-8").splitlines() if l.strip() and not l.startswith("#")],
    extras_require={"test": ["pytest"]},
    entry_points={"console_scripts": ["vmevc=vmevc.__main__:main"]},
)
