from . import info, search

ENTRY_PARSERS = [
    info,
    search,
]
