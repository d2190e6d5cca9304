"""
Table name validation.

Rejects or corrects table names before a query is built so that typos such as
"invitation_codes" never reach PostgREST as "relation does not exist".
"""
import logging
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

from macrotrack.config.tables_config import OPTIONAL_TABLES, TABLE_CORRECTIONS, VALID_TABLES

logger = logging.getLogger(__name__)


class InvalidTableName(ValueError):
    def __init__(self, table_name: str, suggestion: str):
        super().__init__(f"Invalid table name '{table_name}': {suggestion}")
        self.table_name = table_name
        self.suggestion = suggestion


class TableValidation(BaseModel):
    valid: bool
    corrected_name: Optional[str] = None
    suggestion: Optional[str] = None


class TableNameValidator:
    def __init__(
        self,
        valid_tables: Optional[Iterable[str]] = None,
        optional_tables: Optional[Iterable[str]] = None,
        corrections: Optional[Dict[str, Optional[str]]] = None,
    ):
        self.valid_tables = list(valid_tables if valid_tables is not None else VALID_TABLES)
        self.optional_tables = list(optional_tables if optional_tables is not None else OPTIONAL_TABLES)
        self.corrections = dict(corrections if corrections is not None else TABLE_CORRECTIONS)

    def validate_table_name(self, table_name: Optional[str]) -> TableValidation:
        if not table_name:
            return TableValidation(valid=False, suggestion="Table name cannot be empty")

        if table_name in self.valid_tables:
            return TableValidation(valid=True, corrected_name=table_name)

        if table_name in self.optional_tables:
            return TableValidation(
                valid=False,
                corrected_name=table_name,
                suggestion=f"Table '{table_name}' is optional and may not exist. Consider adding error handling."
            )

        if table_name in self.corrections:
            replacement = self.corrections[table_name]
            if replacement:
                return TableValidation(
                    valid=False,
                    corrected_name=replacement,
                    suggestion=f"Replace '{table_name}' with '{replacement}'"
                )
            return TableValidation(
                valid=False,
                suggestion=f"Table '{table_name}' does not exist in schema. Consider removing this reference or creating the table."
            )

        return TableValidation(
            valid=False,
            suggestion=f"Unknown table '{table_name}'. Check schema or add to validator."
        )

    def safe_table(self, table_name: str) -> str:
        """Name to query: the table itself, its correction, or InvalidTableName."""
        validation = self.validate_table_name(table_name)
        if validation.valid:
            return table_name
        if validation.corrected_name and validation.corrected_name != table_name:
            logger.warning(f"Table name corrected: '{table_name}' -> '{validation.corrected_name}'")
            return validation.corrected_name
        logger.error(f"Invalid table name: {validation.suggestion}")
        raise InvalidTableName(table_name, validation.suggestion)

    def get_valid_tables(self) -> List[str]:
        return list(self.valid_tables)

    def get_optional_tables(self) -> List[str]:
        return list(self.optional_tables)

    def validate_multiple(self, table_names: Iterable[str]) -> Dict[str, list]:
        results = {"valid": [], "invalid": [], "corrections": []}
        for table_name in table_names:
            validation = self.validate_table_name(table_name)
            if validation.valid:
                results["valid"].append(table_name)
                continue

            results["invalid"].append({
                "original": table_name,
                "suggestion": validation.suggestion,
                "corrected": validation.corrected_name
            })
            if validation.corrected_name and validation.corrected_name != table_name:
                results["corrections"].append({"from": table_name, "to": validation.corrected_name})
        return results


table_validator = TableNameValidator()
