"""Institution master data.

Institutions belong to a participant and carry the defaults (canton,
copyright, rights statement) used to enrich records that do not specify
them.  Only institutions flagged ``publish`` take part in ingestion.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any


class License(Enum):
    """Rights statements and licenses available to institutions."""

    IN_C = ("InC", "In Copyright - Re-use Not Permitted", "https://rightsstatements.org/vocab/InC/1.0/")
    IN_C_EDU = (
        "InC-EDU",
        "In Copyright - Educational Use Permitted",
        "https://rightsstatements.org/vocab/InC-EDU/1.0/",
    )
    CNE = ("CNE", "Copyright Not Evaluated", "https://rightsstatements.org/vocab/CNE/1.0/")
    CC_0 = (
        "CC0",
        "The Creative Commons CC0 1.0 Universal Public Domain Dedication",
        "https://creativecommons.org/publicdomain/zero/1.0/",
    )
    PDM = ("PDM", "The Public Domain Mark (PDM)", "https://creativecommons.org/publicdomain/mark/1.0/")
    CC_BY = ("CC BY 4.0", "Creative Commons - Attribution", "https://creativecommons.org/licenses/by/4.0/")
    CC_BY_SA = (
        "CC BY-SA 4.0",
        "Creative Commons - Attribution, ShareAlike",
        "https://creativecommons.org/licenses/by-sa/4.0/",
    )
    CC_BY_ND = (
        "CC BY-ND 4.0",
        "Creative Commons - Attribution, No Derivatives",
        "https://creativecommons.org/licenses/by-nd/4.0/",
    )
    CC_BY_NC = (
        "CC BY-NC 4.0",
        "Creative Commons - Attribution, Non-Commercial",
        "https://creativecommons.org/licenses/by-nc/4.0/",
    )
    CC_BY_NC_SA = (
        "CC BY-NC-SA 4.0",
        "Creative Commons - Attribution, Non-Commercial, ShareAlike",
        "https://creativecommons.org/licenses/by-nc-sa/4.0/",
    )
    CC_BY_NC_ND = (
        "CC BY-NC-ND 4.0",
        "Creative Commons - Attribution, Non-Commercial, No Derivatives",
        "https://creativecommons.org/licenses/by-nc-nd/4.0/",
    )

    def __init__(self, short: str, long: str, url: str) -> None:
        self.short = short
        self.long = long
        self.url = url

    @classmethod
    def from_short(cls, short: str) -> License:
        for license in cls:
            if license.short == short:
                return license
        raise ValueError(f"Unknown license: {short}")


@dataclass(frozen=True)
class Institution:
    """A museum or collection that publishes records through a participant."""

    id: str
    name: str
    participant: str
    display_name: str | None = None
    canton: str | None = None
    publish: bool = True
    default_copyright: str | None = None
    default_license: License | None = None
    isil: str | None = None
    street: str | None = None
    zip: str | None = None
    city: str | None = None
    email: str | None = None
    homepage: str | None = None
    description: str | None = None

    @classmethod
    def create(cls, name: str, participant: str, **kwargs) -> Institution:
        return cls(id=str(uuid.uuid4()), name=name, participant=participant, **kwargs)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Institution:
        """Build an institution from JSON; ``default_license`` is a short name such as ``CC BY 4.0``."""
        values = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        values.setdefault("id", str(uuid.uuid4()))
        if values.get("default_license"):
            values["default_license"] = License.from_short(values["default_license"])
        return cls(**values)
