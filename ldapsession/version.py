# Initialize version as unknown
version = "?"

try:
    from importlib.metadata import PackageNotFoundError
    from importlib.metadata import version as get_version

    version = get_version("ldapsession")
except PackageNotFoundError:
    print(
        "Cannot determine ldapsession version. "
        'If running from source you should at least run "pip install -e ."'
    )

BANNER = "ldapsession v{}\n".format(version)
