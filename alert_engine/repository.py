"""
PostgreSQL storage for alert rules and alerts
Rule source and alert store used by RuleEngine and ActionExecutor
"""
import json
import logging
import psycopg2
from psycopg2.extras import RealDictCursor
from pydantic import ValidationError
from typing import List, Optional, Sequence

from alert_engine.models import AlertRecord, OPEN_ALERT_STATUSES, Rule

logger = logging.getLogger(__name__)


class _PostgresRepository:
    """One short-lived connection per call"""

    def __init__(self, dsn: str):
        self.dsn = dsn

    def _get_connection(self):
        """Get database connection"""
        return psycopg2.connect(self.dsn)


class RuleRepository(_PostgresRepository):
    """Reads tenant rules from universal_alert_rules"""

    def fetch_active_rules(
        self,
        organization_id: str,
        module_name: Optional[str] = None,
        limit: int = 100
    ) -> List[Rule]:
        """
        Fetch enabled rules for an organization, lowest priority value first.

        Rows scoped to another module are excluded when module_name is given;
        rows without a module apply everywhere.

        Raises:
            psycopg2.Error: on database failure, so callers can tell an
                outage from an empty rule set
        """
        query = """
            SELECT id, organization_id, module_name, rule_name, rule_type,
                   conditions, actions, severity, is_active, priority,
                   metadata, trigger_count, created_at, updated_at
            FROM universal_alert_rules
            WHERE organization_id = %s
              AND is_active = true
        """
        params: list = [organization_id]

        if module_name:
            query += " AND (module_name = %s OR module_name IS NULL)"
            params.append(module_name)

        query += " ORDER BY priority ASC LIMIT %s"
        params.append(limit)

        conn = self._get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(query, params)
                rows = cur.fetchall()
        finally:
            conn.close()

        rules = []
        for row in rows:
            try:
                rules.append(Rule.model_validate(dict(row)))
            except (ValidationError, ValueError) as e:
                logger.warning(f"Skipping malformed rule {row.get('id')}: {e}")

        return rules

    def increment_trigger_count(self, rule_id: str) -> bool:
        """Best-effort bump of the rule's trigger counter"""
        conn = None
        try:
            conn = self._get_connection()
            with conn.cursor() as cur:
                cur.execute("SELECT increment_rule_trigger_count(%s)", (rule_id,))
            conn.commit()
            return True
        except psycopg2.Error as e:
            logger.warning(f"Failed to increment trigger count for rule {rule_id}: {e}")
            return False
        finally:
            if conn is not None:
                conn.close()


class AlertRepository(_PostgresRepository):
    """Alert persistence with fingerprint deduplication"""

    def find_open_alert(
        self,
        organization_id: str,
        fingerprint: str,
        statuses: Sequence[str] = OPEN_ALERT_STATUSES
    ) -> Optional[str]:
        """
        Find an open alert with the same fingerprint

        Returns:
            alert id, or None if no open alert exists
        """
        conn = self._get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute("""
                    SELECT id FROM alerts
                    WHERE organization_id = %s
                      AND fingerprint = %s
                      AND status = ANY(%s)
                    LIMIT 1
                """, (organization_id, fingerprint, list(statuses)))
                row = cur.fetchone()
                return str(row['id']) if row else None
        finally:
            conn.close()

    def create_alert(self, record: AlertRecord) -> Optional[str]:
        """
        Insert an alert unless an open one with the same fingerprint exists

        The partial unique index on (organization_id, fingerprint) makes the
        insert a no-op for concurrent duplicates.

        Returns:
            new alert id, or None when the insert lost to a duplicate

        Raises:
            psycopg2.Error: on any other database failure
        """
        conn = self._get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute("""
                    INSERT INTO alerts (
                        organization_id, rule_id, title, description,
                        severity, status, type, context, module_name,
                        metadata, fingerprint, created_at, updated_at
                    ) VALUES (
                        %s, %s, %s, %s,
                        %s, %s, %s, %s, %s,
                        %s, %s, %s, %s
                    )
                    ON CONFLICT DO NOTHING
                    RETURNING id
                """, (
                    record.organization_id,
                    record.rule_id,
                    record.title,
                    record.description,
                    record.severity.value,
                    record.status.value,
                    record.type,
                    record.context,
                    record.module_name,
                    json.dumps(record.metadata, default=str),
                    record.fingerprint,
                    record.created_at,
                    record.updated_at
                ))
                row = cur.fetchone()
            conn.commit()
            return str(row['id']) if row else None
        except psycopg2.Error:
            conn.rollback()
            raise
        finally:
            conn.close()
