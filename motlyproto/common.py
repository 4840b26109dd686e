"""
Common utility functions for motlyproto.
"""

# pylint: disable=line-too-long

import re


def snake(string):
    """
    Convert a string to snake_case from camelCase, PascalCase, kebab-case or
    space separated words.

    A run of capitals followed by a capitalized word is split before the last
    capital of the run, so 'XMLParser' becomes 'xml_parser' and 'httpURL'
    becomes 'http_url'. Hyphens and whitespace become underscores.

    Args:
        string (str): The string to convert.

    Returns:
        str: The string in snake_case.
    """
    if not string:
        return string
    result = re.sub(r'([A-Z]+)([A-Z][a-z])', r'\1_\2', string)
    result = re.sub(r'([a-z0-9])([A-Z])', r'\1_\2', result)
    result = re.sub(r'[-\s]+', '_', result)
    return result.lower()


def pascal(string):
    """
    Convert a string to PascalCase.

    The string is split on hyphens, underscores and whitespace. Each segment
    keeps its first character upper-cased and the rest lower-cased, so
    'user_status' becomes 'UserStatus' and 'XMLParser' becomes 'Xmlparser'.

    Args:
        string (str): The string to convert.

    Returns:
        str: The string in PascalCase.
    """
    words = re.split(r'[-_\s]+', string)
    return ''.join(word[:1].upper() + word[1:].lower() for word in words)


def enum_prefix(enum_name):
    """ Upper snake case prefix for the members of an enum """
    return snake(enum_name).upper()


def enum_value(value):
    """
    Sanitize an enum literal into a proto enum member suffix.

    Every run of characters that are not ASCII letters or digits becomes a
    single underscore, leading and trailing underscores are dropped and the
    result is upper-cased.

    Args:
        value (str): The raw enum literal.

    Returns:
        str: The sanitized member suffix.
    """
    return re.sub(r'[^a-zA-Z0-9]+', '_', value).strip('_').upper()
