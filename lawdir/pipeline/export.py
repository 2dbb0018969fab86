"""
Export Pipeline - JSON/CSV output of lawyer records plus run statistics

Writes the canonical record stream in the camelCase output shape.

Key Features:
- JSON: one array of records, camelCase keys
- CSV: flat rows, list fields joined with "; ", reviews as embedded JSON
- statistics.json: run summary counters
- Export-layer dedupe by profile URL (records without one are kept)
"""

import csv
import json
from datetime import datetime as dt
from pathlib import Path
from typing import Iterable, List, Optional, Union

from ..schemas import LawyerRecord, RunStats


CSV_COLUMNS = [
    "name", "rating", "reviewCount", "practiceAreas", "location", "phone",
    "email", "website", "yearsLicensed", "barAdmissions", "languages",
    "profileUrl", "bio", "education", "awards", "reviews", "image", "scrapedAt",
]

LIST_COLUMNS = ("practiceAreas", "barAdmissions", "languages", "education", "awards")
LIST_SEPARATOR = "; "


def dedupe_records_for_export(records: Iterable[LawyerRecord]) -> List[LawyerRecord]:
    """Keep the first record per profile URL; does not mutate models."""
    kept: List[LawyerRecord] = []
    seen: set[str] = set()
    total = 0
    for r in records:
        total += 1
        if r.profile_url:
            if r.profile_url in seen:
                continue
            seen.add(r.profile_url)
        kept.append(r)
    if len(kept) < total:
        print(f"🧹 Dedupe: kept {len(kept)} of {total}")
    return kept


def record_to_csv_row(record: LawyerRecord) -> dict:
    row = record.to_output()
    for key in LIST_COLUMNS:
        row[key] = LIST_SEPARATOR.join(row.get(key) or [])
    row["reviews"] = json.dumps(row.get("reviews") or [], ensure_ascii=False) if row.get("reviews") else ""
    if row.get("rating") is None:
        row["rating"] = ""
    return {k: row.get(k, "") for k in CSV_COLUMNS}


class RecordExporter:
    """
    Exports lawyer records to CSV/JSON formats and the run summary to
    statistics.json.
    """

    def __init__(self, output_dir: Union[str, Path] = "output"):
        """
        Args:
            output_dir: Directory for output files (created if doesn't exist)
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, filename: Optional[str], suffix: str) -> Path:
        if filename is None:
            timestamp = dt.now().strftime("%Y%m%d_%H%M%S")
            filename = f"lawyers_{timestamp}{suffix}"
        return self.output_dir / filename

    def to_csv(self, records: List[LawyerRecord], filename: Optional[str] = None) -> Path:
        """
        Export records to CSV; a header-only file is written for an empty run.

        Returns:
            Path to created CSV file
        """
        csv_path = self._path(filename, ".csv")
        records = dedupe_records_for_export(records)
        with open(csv_path, "w", newline="", encoding="utf-8") as csvfile:
            writer = csv.DictWriter(csvfile, fieldnames=CSV_COLUMNS)
            writer.writeheader()
            for record in records:
                writer.writerow(record_to_csv_row(record))
        print(f"💾 CSV exported: {csv_path} ({len(records)} lawyers)")
        return csv_path

    def to_json(self, records: List[LawyerRecord], filename: Optional[str] = None, pretty: bool = True) -> Path:
        json_path = self._path(filename, ".json")
        records = dedupe_records_for_export(records)
        export_data = [r.to_output() for r in records]
        with open(json_path, "w", encoding="utf-8") as jsonfile:
            if pretty:
                json.dump(export_data, jsonfile, indent=2, ensure_ascii=False)
            else:
                json.dump(export_data, jsonfile, ensure_ascii=False)
        print(f"💾 JSON exported: {json_path} ({len(export_data)} lawyers)")
        return json_path

    def to_both(self, records: List[LawyerRecord], base_filename: Optional[str] = None) -> tuple[Path, Path]:
        if base_filename is None:
            base_filename = f"lawyers_{dt.now().strftime('%Y%m%d_%H%M%S')}"
        base_name = Path(base_filename).stem
        csv_path = self.to_csv(records, f"{base_name}.csv")
        json_path = self.to_json(records, f"{base_name}.json")
        return csv_path, json_path

    def write_statistics(self, stats: RunStats, filename: str = "statistics.json") -> Path:
        path = self.output_dir / filename
        with open(path, "w", encoding="utf-8") as f:
            json.dump(stats.to_output(), f, indent=2, ensure_ascii=False)
        print(f"📊 Statistics written: {path}")
        return path

    def validate_export_integrity(self, records: List[LawyerRecord], export_path: Path) -> bool:
        """Row/object count of an exported file matches the deduped record count."""
        if not export_path.exists():
            return False
        expected = len(dedupe_records_for_export(records))
        if export_path.suffix == ".csv":
            with open(export_path, "r", encoding="utf-8") as f:
                reader = csv.reader(f)
                next(reader)
                return sum(1 for _ in reader) == expected
        if export_path.suffix == ".json":
            with open(export_path, "r", encoding="utf-8") as f:
                return len(json.load(f)) == expected
        return False
