from setuptools import setup

with open("README.md") as f:
    readme = f.read()

_ = setup(
    name="ldapsession",
    version="1.0.0",
    license="MIT",
    long_description=readme,
    long_description_content_type="text/markdown",
    python_requires=">=3.8",
    install_requires=[
        "impacket~=0.12.0",
        "ldap3~=2.9.1",
        "dnspython~=2.7.0",
        "PySocks~=1.7.1",
        "argcomplete~=3.5.3",
    ],
    extras_require={
        "test": ["pytest>=8.0"],
    },
    packages=[
        "ldapsession",
        "ldapsession.commands",
        "ldapsession.commands.parsers",
        "ldapsession.lib",
    ],
    entry_points={
        "console_scripts": ["ldapsession=ldapsession.entry:main"],
    },
    description="Authenticated LDAP sessions with streaming search results",
)
