"""
Migration script for employee-level primary evaluator uniqueness.

- Soft-deletes duplicate employee-level mappings (wbs_item_id IS NULL) per
  (period, employee, evaluation line), keeping the newest row
- Adds the partial unique index that prevents new duplicates
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import create_engine, inspect, text

from perfeval.config import get_settings

settings = get_settings()

INDEX_NAME = "uq_evaluation_line_mappings_primary_per_period_employee_line"


def _index_exists(conn, table_name: str, index_name: str) -> bool:
    return any(ix.get("name") == index_name for ix in inspect(conn).get_indexes(table_name))


def migrate_primary_mapping_unique_v1():
    engine = create_engine(settings.database_url_sync, echo=True)
    with engine.begin() as conn:
        result = conn.execute(
            text(
                """
                WITH primary_mappings AS (
                    SELECT id,
                           ROW_NUMBER() OVER (
                               PARTITION BY period_id, employee_id, evaluation_line_id
                               ORDER BY created_at DESC, id DESC
                           ) AS rn
                    FROM evaluation_line_mappings
                    WHERE wbs_item_id IS NULL AND deleted_at IS NULL
                )
                UPDATE evaluation_line_mappings
                SET deleted_at = CURRENT_TIMESTAMP, deleted_by = 'migration'
                WHERE id IN (SELECT id FROM primary_mappings WHERE rn > 1)
                """
            )
        )
        print(f"Soft-deleted duplicate primary mappings: {result.rowcount}")

        if _index_exists(conn, "evaluation_line_mappings", INDEX_NAME):
            print(f"Index already exists: {INDEX_NAME}")
        else:
            print(f"Creating index: {INDEX_NAME}")
            conn.execute(
                text(
                    f"""
                    CREATE UNIQUE INDEX {INDEX_NAME}
                    ON evaluation_line_mappings (period_id, employee_id, evaluation_line_id)
                    WHERE wbs_item_id IS NULL AND deleted_at IS NULL
                    """
                )
            )

    print("Migration complete.")


if __name__ == "__main__":
    migrate_primary_mapping_unique_v1()
