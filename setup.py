"""Setup configuration for the modshield Discord bot."""

from setuptools import setup, find_packages

setup(
    name="modshield",
    version="0.1.0",
    description="A Discord bot that screens messages for phishing links and NSFW media",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "py-cord>=2.6",
        "python-dotenv>=1.0",
        "PyYAML>=6.0",
        "Pillow>=10.1",
        "pillow-heif>=0.16",
        "requests>=2.31",
        "prompt_toolkit>=3.0",
        "onnxruntime>=1.17",
        "numpy>=1.26",
        "psutil>=5.9",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "modshield=modshield.main:main",
        ],
    },
)
