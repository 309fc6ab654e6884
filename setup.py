from setuptools import setup, find_packages

setup(
    name="codegraph",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "pyyaml",
        # Graph store and traversal
        "networkx>=3.0",
        # Pairwise similarity
        "numpy",
        "tqdm>=4.60",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    author="Uday Kanth",
    description="A code knowledge graph: lexical extraction, semantic search and insights.",
)
