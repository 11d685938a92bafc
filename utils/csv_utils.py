# =============================================================================
# utils/csv_utils.py - CSV utilities
# =============================================================================

import csv
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Dict, Any, Optional

from core.models import ProcessedUserRecord, output_fieldnames

EXPORT_FILE_PREFIX = "AllEntraIDUsers"


class CSVHandler:
    """Utilities for writing export CSV files"""

    @staticmethod
    def write_csv(data: List[Dict[str, Any]], output_path: str,
                  fieldnames: Optional[List[str]] = None) -> None:
        """Write data to CSV file; the header is written even when there are no rows"""
        logger = logging.getLogger(__name__)

        if fieldnames is None:
            if not data:
                logger.warning("No data to write")
                return
            fieldnames = list(data[0].keys())

        if not data:
            logger.warning(f"No data to write, {output_path} will only contain the header")

        try:
            with open(output_path, 'w', newline='', encoding='utf-8') as file:
                writer = csv.DictWriter(file, fieldnames=fieldnames)
                writer.writeheader()
                writer.writerows(data)

            logger.info(f"Successfully wrote {len(data)} records to {output_path}")

        except Exception as e:
            logger.error(f"Error writing CSV: {e}")
            raise

    @staticmethod
    def build_export_path(output_dir: str, timestamp: Optional[datetime] = None) -> Path:
        timestamp = timestamp or datetime.now()
        return Path(output_dir) / f"{EXPORT_FILE_PREFIX}_{timestamp.strftime('%Y%m%d_%H%M%S')}.csv"

    @staticmethod
    def export_users(records: List[ProcessedUserRecord], output_dir: str,
                     timestamp: Optional[datetime] = None) -> str:
        """Sort records by display name and write them to a timestamped CSV in output_dir"""
        logger = logging.getLogger(__name__)
        logger.info("Exporting to CSV...")

        output_path = CSVHandler.build_export_path(output_dir, timestamp)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        ordered = sorted(records, key=lambda record: ((record.display_name or '').casefold(), record.display_name or ''))
        CSVHandler.write_csv([record.to_row() for record in ordered], str(output_path), output_fieldnames())

        logger.info(f"Microsoft Entra ID users exported to {output_path}")
        return str(output_path)
