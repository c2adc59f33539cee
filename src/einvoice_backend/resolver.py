"""
Resolution of combine parameters into a conversion configuration.

Callers send loosely typed selectors (a format code, a version number and an
optional one-letter profile code). This module turns them into a frozen
ConversionConfig or rejects the request with an InvalidArgumentError before
any file is written or the toolkit is called.

Resolution order:
1. Normalize the format code (blank means "fx")
2. Check the version is 1 or 2
3. Reject Factur-X at version 2
4. Map the format code to a standard
5. Pick the profile code (caller value or a format/version default)
6. Translate the code to a catalog profile via static tables
7. Derive the version handed to the exporter
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple

from .errors import InvalidArgumentError
from .profiles import Profile, Standard, UnknownProfileError, get_profile

DEFAULT_MIME_TYPE = "application/octet-stream"

FORMAT_CODES = ("fx", "zf", "ox", "da")
SUPPORTED_VERSIONS = (1, 2)

STANDARD_BY_FORMAT: Dict[str, Standard] = {
    "fx": Standard.FACTURX,
    "zf": Standard.ZUGFERD,
    "ox": Standard.ORDERX,
    "da": Standard.DESPATCH_ADVICE,
}

# Profile tables keyed by one-letter code
DESPATCH_ADVICE_PROFILES: Dict[str, str] = {"p": "PILOT"}
LEGACY_PROFILES: Dict[str, str] = {"b": "BASIC", "c": "COMFORT", "t": "EXTENDED"}
EN16931_PROFILES: Dict[str, str] = {
    "m": "MINIMUM",
    "w": "BASICWL",
    "b": "BASIC",
    "c": "CIUS",
    "e": "EN16931",
    "t": "EXTENDED",
    "x": "XRECHNUNG",
}

# Despatch advice profiles only exist at version 1
DESPATCH_ADVICE_PROFILE_VERSION = 1
FACTURX_EXPORTER_VERSION = 2


@dataclass(frozen=True)
class Attachment:
    filename: str
    data: bytes
    mime_type: Optional[str] = None

    @property
    def effective_mime_type(self) -> str:
        return self.mime_type or DEFAULT_MIME_TYPE


@dataclass(frozen=True)
class ConversionConfig:
    """
    Fully resolved, internally consistent combine configuration.

    Attributes:
        format_code: One of fx, zf, ox, da
        standard: Invoice standard derived from the format code
        version: Validated input version (1 or 2)
        profile_code: Lower-case one-letter profile selector
        profile: Catalog profile the code resolved to
        ignore_input_errors: Accept PDF inputs that are not valid PDF/A
        attachments: Files to embed, in request order
    """

    format_code: str
    standard: Standard
    version: int
    profile_code: str
    profile: Profile
    ignore_input_errors: bool = False
    attachments: Tuple[Attachment, ...] = field(default_factory=tuple)

    @property
    def exporter_version(self) -> int:
        # Factur-X hybrids are always written with the version 2 structure
        if self.format_code == "fx":
            return FACTURX_EXPORTER_VERSION
        return self.version


def normalize_format(format_code: Optional[str]) -> str:
    if format_code is None or not format_code.strip():
        return "fx"
    return format_code.strip().lower()


def default_profile_code(format_code: str, version: int) -> str:
    if format_code == "da":
        return "p"
    if format_code == "ox" or (format_code == "zf" and version == 1):
        return "t"
    return "e"


def resolve_profile_code(format_code: str, version: int, profile: Optional[str]) -> str:
    if profile is not None and profile.strip():
        return profile.strip().lower()
    return default_profile_code(format_code, version)


def profile_table(format_code: str, version: int) -> Dict[str, str]:
    """Return the code-to-name table that applies to a format/version pair."""
    if format_code == "da":
        return DESPATCH_ADVICE_PROFILES
    if format_code == "ox" or (format_code == "zf" and version == 1):
        return LEGACY_PROFILES
    return EN16931_PROFILES


def resolve_profile(format_code: str, standard: Standard, version: int, profile_code: str, original: str) -> Profile:
    """
    Translate a profile code into a catalog profile.

    Unknown codes and catalog misses raise the same error, carrying the
    profile string the caller sent.
    """
    name = profile_table(format_code, version).get(profile_code)
    if name is None:
        raise InvalidArgumentError(f"Unknown profile '{original}'")

    lookup_version = DESPATCH_ADVICE_PROFILE_VERSION if format_code == "da" else version
    try:
        return get_profile(standard, name, lookup_version)
    except UnknownProfileError as exc:
        raise InvalidArgumentError(f"Unknown profile '{original}'") from exc


def resolve_conversion_config(
    format_code: Optional[str],
    version: int,
    profile: Optional[str] = None,
    ignore_input_errors: bool = False,
    attachments: Iterable[Attachment] = (),
) -> ConversionConfig:
    """
    Resolve raw combine parameters.

    Args:
        format_code: Caller format selector (fx, zf, ox, da; any case)
        version: Requested schema version
        profile: Optional one-letter profile code
        ignore_input_errors: Accept non-conforming input PDFs
        attachments: Files to embed, in order

    Returns:
        The resolved ConversionConfig

    Raises:
        InvalidArgumentError: On any unknown or inconsistent selector
    """
    normalized = normalize_format(format_code)
    if normalized not in FORMAT_CODES:
        raise InvalidArgumentError(f"Unknown format '{format_code}'")
    if version not in SUPPORTED_VERSIONS:
        raise InvalidArgumentError("version must be 1 or 2")
    if normalized == "fx" and version > 1:
        raise InvalidArgumentError("Factur-X is only available in version 1")

    standard = STANDARD_BY_FORMAT[normalized]
    profile_code = resolve_profile_code(normalized, version, profile)
    original = profile if profile is not None and profile.strip() else profile_code
    resolved = resolve_profile(normalized, standard, version, profile_code, original)

    return ConversionConfig(
        format_code=normalized,
        standard=standard,
        version=version,
        profile_code=profile_code,
        profile=resolved,
        ignore_input_errors=ignore_input_errors,
        attachments=tuple(attachments),
    )
