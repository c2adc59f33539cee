"""
Catalog of invoice standards and their conformance profiles.

A profile is addressed by the triple (standard, name, version). The catalog
mirrors what the invoice toolkit accepts; anything outside it is rejected
before the toolkit is invoked.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple


class Standard(str, Enum):
    ZUGFERD = "zugferd"
    FACTURX = "facturx"
    ORDERX = "orderx"
    DESPATCH_ADVICE = "despatchadvice"


@dataclass(frozen=True)
class Profile:
    """
    A named conformance level within a standard.

    Attributes:
        name: Upper-case profile name, e.g. "EN16931"
        standard: Standard the profile belongs to
        version: Schema version the profile is defined for
        code: One-letter selector passed to the toolkit
    """

    name: str
    standard: Standard
    version: int
    code: str


class UnknownProfileError(LookupError):
    """Raised when a (standard, name, version) triple is not in the catalog."""


# Letters the toolkit uses to select a profile on its command line
PROFILE_CODES: Dict[str, str] = {
    "MINIMUM": "M",
    "BASICWL": "W",
    "BASIC": "B",
    "COMFORT": "C",
    "CIUS": "C",
    "EN16931": "E",
    "EXTENDED": "T",
    "XRECHNUNG": "X",
    "PILOT": "P",
}

_ZUGFERD_V1 = ("BASIC", "COMFORT", "EXTENDED")
_EN16931_FAMILY = ("MINIMUM", "BASICWL", "BASIC", "CIUS", "EN16931", "EXTENDED", "XRECHNUNG")
_ORDERX = ("BASIC", "COMFORT", "EXTENDED")

CATALOG: Dict[Tuple[Standard, int], Tuple[str, ...]] = {
    (Standard.ZUGFERD, 1): _ZUGFERD_V1,
    (Standard.ZUGFERD, 2): _EN16931_FAMILY,
    (Standard.FACTURX, 1): _EN16931_FAMILY,
    # Order-X profiles do not depend on the requested version
    (Standard.ORDERX, 1): _ORDERX,
    (Standard.ORDERX, 2): _ORDERX,
    (Standard.DESPATCH_ADVICE, 1): ("PILOT",),
}


def get_profile(standard: Standard, name: str, version: int) -> Profile:
    """
    Look up a profile by standard, name and version.

    Raises:
        UnknownProfileError: If the standard does not define the profile at
            that version
    """
    ucname = name.upper()
    names = CATALOG.get((Standard(standard), version), ())
    if ucname not in names:
        raise UnknownProfileError(f"No profile {ucname} for {Standard(standard).value} version {version}")
    return Profile(name=ucname, standard=Standard(standard), version=version, code=PROFILE_CODES[ucname])
