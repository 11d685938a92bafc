# =============================================================================
# services/sku_mapping.py - Friendly license names from Microsoft's CSV
# =============================================================================

import io
import logging
from typing import Dict, Optional

import aiohttp
import pandas as pd

DISPLAY_NAME_COLUMN = 'Product_Display_Name'
STRING_ID_COLUMN = 'String_Id'
GUID_COLUMN = 'GUID'


class SkuMappingService:
    """
    Maps technical SKU names (e.g. "ENTERPRISEPACK") and SKU GUIDs to the
    product names Microsoft publishes (e.g. "Office 365 E3").

    The source is Microsoft's "Product names and service plan identifiers for
    licensing" CSV, downloaded from mapping_url or read from a local copy.
    The CSV holds one row per (SKU, service plan), so only the first row of
    each SKU is used.
    """

    def __init__(self, mapping_url: str, mapping_file: Optional[str] = None):
        self.mapping_url = mapping_url
        self.mapping_file = mapping_file
        self.mapping_by_string_id: Dict[str, str] = {}
        self.mapping_by_guid: Dict[str, str] = {}
        self.logger = logging.getLogger(self.__class__.__name__)

    async def build_sku_friendly_name_map(self) -> None:
        """Load the mapping; on failure the maps stay empty and technical names are used"""
        try:
            if self.mapping_file:
                self.logger.info(f"Reading SKU friendly name mapping from {self.mapping_file}")
                mapping = pd.read_csv(self.mapping_file, dtype=str, encoding='utf-8-sig')
            else:
                self.logger.info("Downloading Microsoft SKU friendly name mapping...")
                content = await self.fetch_csv(self.mapping_url)
                mapping = pd.read_csv(io.StringIO(content.lstrip('\ufeff')), dtype=str)

            self.build_maps(mapping)
            self.logger.info(f"Loaded {len(self.mapping_by_string_id)} unique SKU friendly names")

        except Exception as e:
            self.logger.warning(f"Failed to load SKU mapping: {e}")
            self.logger.warning("Will fall back to technical SKU names")

    async def fetch_csv(self, url: str) -> str:
        """Download the CSV; aiohttp follows the download site's redirects"""
        async with aiohttp.ClientSession() as session:
            async with session.get(url) as response:
                if response.status != 200:
                    raise ConnectionError(f"HTTP {response.status}: {response.reason}")
                return await response.text(encoding='utf-8')

    def build_maps(self, mapping: pd.DataFrame) -> None:
        mapping = mapping.rename(columns=lambda column: str(column).strip())
        missing = [
            column for column in (DISPLAY_NAME_COLUMN, STRING_ID_COLUMN, GUID_COLUMN)
            if column not in mapping.columns
        ]
        if missing:
            raise ValueError(f"SKU mapping is missing columns: {missing}")

        mapping = mapping[[DISPLAY_NAME_COLUMN, STRING_ID_COLUMN, GUID_COLUMN]].fillna('')
        mapping = mapping.apply(lambda column: column.str.strip())
        mapping[GUID_COLUMN] = mapping[GUID_COLUMN].str.lower()
        mapping = mapping[mapping[DISPLAY_NAME_COLUMN] != '']

        by_string_id = mapping[mapping[STRING_ID_COLUMN] != ''].drop_duplicates(
            subset=STRING_ID_COLUMN, keep='first'
        )
        by_guid = mapping[mapping[GUID_COLUMN] != ''].drop_duplicates(
            subset=GUID_COLUMN, keep='first'
        )

        self.mapping_by_string_id = dict(zip(by_string_id[STRING_ID_COLUMN], by_string_id[DISPLAY_NAME_COLUMN]))
        self.mapping_by_guid = dict(zip(by_guid[GUID_COLUMN], by_guid[DISPLAY_NAME_COLUMN]))

    def get_friendly_name_by_string_id(self, string_id: Optional[str]) -> Optional[str]:
        if not string_id:
            return None
        return self.mapping_by_string_id.get(string_id)

    def get_friendly_name_by_guid(self, guid: Optional[str]) -> Optional[str]:
        if not guid:
            return None
        return self.mapping_by_guid.get(guid.lower())
