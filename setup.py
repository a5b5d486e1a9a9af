import os
from setuptools import setup, find_packages


def read(fname):
    with open(os.path.join(os.path.dirname(__file__), fname)) as f:
        return f.read()


setup(
    name="pyesl",
    version="0.5",
    description="Twisted client and server for the FreeSWITCH Event Socket Layer",
    license="GPL",
    keywords="freeswitch eventsocket esl twisted protocol",
    long_description=read("README.md"),
    long_description_content_type="text/markdown",
    python_requires=">=3.8",
    install_requires=[
        "Twisted",
    ],
    extras_require={
        "test": ["pytest"],
    },
    classifiers=[
        "License :: OSI Approved :: GNU General Public License (GPL)",
        "Programming Language :: Python :: 3",
        "Framework :: Twisted",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Intended Audience :: Developers",
    ],
    packages=find_packages(exclude=["tests", "tests.*"]),
)
