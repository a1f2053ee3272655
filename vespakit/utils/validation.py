# Copyright Vespa.ai. Licensed under the terms of the Apache 2.0 license. See LICENSE in the project root.

import re
from typing import Any

from vespakit.exceptions import InvalidArgumentError

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")
XML_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_.-]*$")


def require_present(attribute: str, value: Any) -> None:
    if value is None:
        raise InvalidArgumentError("{} is required".format(attribute))


def require_str(attribute: str, value: Any) -> None:
    """Fail unless `value` is a non-empty string. An empty string counts as not set."""
    require_present(attribute, value)
    if not isinstance(value, str):
        raise InvalidArgumentError("{} must be a string".format(attribute))
    if value == "":
        raise InvalidArgumentError("{} is required".format(attribute))


def optional_str(attribute: str, value: Any) -> None:
    if value is not None:
        require_str(attribute, value)


def require_identifier(attribute: str, value: Any) -> None:
    require_str(attribute, value)
    if not IDENTIFIER_PATTERN.match(value):
        raise InvalidArgumentError(
            "{} must match {}, was '{}'".format(
                attribute, IDENTIFIER_PATTERN.pattern, value
            )
        )


def require_str_items(attribute: str, values: Any) -> None:
    for value in values:
        if not isinstance(value, str):
            raise InvalidArgumentError(
                "{} must only contain strings, got {!r}".format(attribute, value)
            )


def require_xml_name(attribute: str, value: Any) -> None:
    """Fail unless `value` can be used as an XML element name."""
    require_str(attribute, value)
    if not XML_NAME_PATTERN.match(value):
        raise InvalidArgumentError(
            "{} must be a valid XML element name matching {}, was '{}'".format(
                attribute, XML_NAME_PATTERN.pattern, value
            )
        )
