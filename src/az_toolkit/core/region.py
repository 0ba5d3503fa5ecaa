"""Azure regions and their short abbreviations."""

from __future__ import annotations

from dataclasses import dataclass

# name -> (label, abbreviation)
_REGIONS: dict[str, tuple[str, str]] = {
    "eastus": ("East US", "EUS"),
    "eastus2": ("East US 2", "EUS2"),
    "centralus": ("Central US", "CUS"),
    "northcentralus": ("North Central US", "NCUS"),
    "southcentralus": ("South Central US", "SCUS"),
    "westcentralus": ("West Central US", "WCUS"),
    "westus": ("West US", "WUS"),
    "westus2": ("West US 2", "WUS2"),
    "westus3": ("West US 3", "WUS3"),
    "canadacentral": ("Canada Central", "CCA"),
    "canadaeast": ("Canada East", "CAE"),
    "brazilsouth": ("Brazil South", "CQ"),
    "northeurope": ("North Europe", "NEU"),
    "westeurope": ("West Europe", "WEU"),
    "uksouth": ("UK South", "SUK"),
    "ukwest": ("UK West", "WUK"),
    "francecentral": ("France Central", "PAR"),
    "germanywestcentral": ("Germany West Central", "DEWC"),
    "switzerlandnorth": ("Switzerland North", "CHN"),
    "norwayeast": ("Norway East", "NOE"),
    "swedencentral": ("Sweden Central", "SEC"),
    "eastasia": ("East Asia", "EA"),
    "southeastasia": ("Southeast Asia", "SEA"),
    "japaneast": ("Japan East", "EJP"),
    "japanwest": ("Japan West", "OS"),
    "koreacentral": ("Korea Central", "SE"),
    "centralindia": ("Central India", "CID"),
    "southindia": ("South India", "MA"),
    "australiaeast": ("Australia East", "EAU"),
    "australiasoutheast": ("Australia Southeast", "SEAU"),
    "southafricanorth": ("South Africa North", "JNB"),
    "uaenorth": ("UAE North", "DXB"),
    "chinaeast2": ("China East 2", "CNE2"),
    "chinanorth2": ("China North 2", "CNN2"),
    "usgovvirginia": ("US Gov Virginia", "USGV"),
    "usgovarizona": ("US Gov Arizona", "USGA"),
}


@dataclass(frozen=True)
class Region:
    name: str
    label: str
    abbreviation: str

    @classmethod
    def from_name(cls, value: str) -> Region:
        """Resolve a region from its name or label (``"East US"`` / ``eastus``)."""
        key = value.replace(" ", "").lower()
        known = _REGIONS.get(key)
        if known is not None:
            return cls(key, *known)
        return cls(key, value, key.upper())

    def __str__(self) -> str:
        return self.name
