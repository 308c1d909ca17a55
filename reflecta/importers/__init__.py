"""Importers for loading exported goal and journal documents."""

from reflecta.importers.json_importer import JsonImporter, JsonImportItem, parse_export_json

__all__ = ["JsonImporter", "JsonImportItem", "parse_export_json"]
