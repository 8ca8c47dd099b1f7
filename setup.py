from setuptools import setup, find_packages

setup(
    name="wbrowse",
    version="0.1.0",
    description="Persistent browser sessions for the shell, backed by a per-session daemon",
    license="MIT",
    packages=find_packages(include=["wbrowse", "wbrowse.*"]),
    install_requires=[
        "typer>=0.12.0",
        "rich>=13.0.0",
        "python-dotenv>=1.0.0",
        "setproctitle>=1.3.0",
        "playwright>=1.40.0",
        "beautifulsoup4>=4.12.0",
        "mistralai>=1.0.0,<2",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "wb=wbrowse.main:wb",
            "wbd=wbrowse.daemon.server:main",
        ],
    },
    python_requires=">=3.10",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
)
