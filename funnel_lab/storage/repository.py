"""
Repository pattern for data access.

Handles database operations and data persistence logic for every table
the analysis pipeline reads or appends to.
"""

import json
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .db import DEFAULT_DB_PATH, get_connection
from .models import (
    AIConfiguration,
    AIModel,
    AnalysisLog,
    AuthSession,
    CacheEntry,
    ConfigLevel,
    DEFAULT_FREQUENCY_PENALTY,
    DEFAULT_MAX_TOKENS,
    DEFAULT_PRESENCE_PENALTY,
    DEFAULT_TEMPERATURE,
    DEFAULT_TOP_P,
    ErrorLogEntry,
    FeatureUsage,
    ProviderConnection,
    Subscription,
    SubscriptionPlan,
    UsageMetric,
)


_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS system_cache (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS ai_models (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        model_name TEXT NOT NULL,
        provider TEXT NOT NULL,
        provider_model_id TEXT NOT NULL,
        api_endpoint TEXT,
        is_active INTEGER NOT NULL DEFAULT 1
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS ai_configurations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        config_level TEXT NOT NULL CHECK (config_level IN ('global', 'plan', 'service')),
        level_identifier TEXT,
        model_id INTEGER NOT NULL REFERENCES ai_models(id),
        system_prompt TEXT NOT NULL DEFAULT '',
        temperature REAL,
        top_p REAL,
        max_tokens INTEGER,
        frequency_penalty REAL,
        presence_penalty REAL,
        is_active INTEGER NOT NULL DEFAULT 1
    )
    """,
    # At most one active configuration per (level, identifier)
    """
    CREATE UNIQUE INDEX IF NOT EXISTS ux_ai_configurations_active
    ON ai_configurations (config_level, IFNULL(level_identifier, ''))
    WHERE is_active = 1
    """,
    """
    CREATE TABLE IF NOT EXISTS provider_configurations (
        provider_name TEXT PRIMARY KEY,
        api_endpoint TEXT,
        api_key TEXT,
        is_active INTEGER NOT NULL DEFAULT 1
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS ai_usage_metrics (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp TEXT NOT NULL,
        user_id TEXT NOT NULL,
        model_name TEXT NOT NULL,
        service_type TEXT NOT NULL,
        tokens_input INTEGER NOT NULL,
        tokens_output INTEGER NOT NULL,
        estimated_cost TEXT NOT NULL,
        response_time_ms INTEGER NOT NULL,
        success INTEGER NOT NULL,
        error_type TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS usage_metrics (
        metric_type TEXT NOT NULL,
        date TEXT NOT NULL,
        metric_value INTEGER NOT NULL DEFAULT 0,
        PRIMARY KEY (metric_type, date)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS usage_tracking (
        user_id TEXT NOT NULL,
        feature TEXT NOT NULL,
        period_start TEXT NOT NULL,
        period_end TEXT NOT NULL,
        count INTEGER NOT NULL DEFAULT 0,
        PRIMARY KEY (user_id, feature, period_start)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS error_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        error_type TEXT NOT NULL,
        error_message TEXT NOT NULL,
        fingerprint TEXT NOT NULL,
        endpoint TEXT,
        user_id TEXT,
        first_occurrence TEXT NOT NULL,
        last_occurrence TEXT NOT NULL,
        frequency INTEGER NOT NULL DEFAULT 1 CHECK (frequency >= 1),
        resolved INTEGER NOT NULL DEFAULT 0
    )
    """,
    # At most one open entry per (error_type, fingerprint)
    """
    CREATE UNIQUE INDEX IF NOT EXISTS ux_error_logs_open
    ON error_logs (error_type, fingerprint)
    WHERE resolved = 0
    """,
    """
    CREATE TABLE IF NOT EXISTS subscription_plans (
        name TEXT PRIMARY KEY,
        features TEXT NOT NULL DEFAULT '{}',
        is_active INTEGER NOT NULL DEFAULT 1
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_subscriptions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        plan_name TEXT NOT NULL REFERENCES subscription_plans(name),
        status TEXT NOT NULL DEFAULT 'active'
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS auth_sessions (
        token TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        expires_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS funnel_analysis_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp TEXT NOT NULL,
        user_id TEXT NOT NULL,
        ad_text TEXT NOT NULL,
        landing_page_text TEXT NOT NULL,
        coherence_score REAL NOT NULL,
        suggestions TEXT NOT NULL,
        optimized_ad TEXT NOT NULL,
        processing_time_ms INTEGER NOT NULL,
        cache_hit INTEGER NOT NULL
    )
    """,
]


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create every table and index if they don't exist.

    Usage metrics and analysis logs are append-only ledgers: no UPDATE or
    DELETE is ever issued against them by this package.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        for statement in _SCHEMA:
            conn.execute(statement)
        conn.commit()
    finally:
        conn.close()


# --- cache -----------------------------------------------------------------

def fetch_cache_entry(key: str, db_path: str = DEFAULT_DB_PATH) -> Optional[CacheEntry]:
    """Fetch a cache entry by key regardless of its age."""
    conn = get_connection(db_path)
    try:
        row = conn.execute(
            "SELECT key, value, created_at FROM system_cache WHERE key = ?",
            (key,)
        ).fetchone()
        if row is None:
            return None
        return CacheEntry(
            key=row["key"],
            value=json.loads(row["value"]),
            created_at=_parse_timestamp(row["created_at"])
        )
    finally:
        conn.close()


def upsert_cache_entry(
    key: str,
    value: Dict[str, Any],
    created_at: datetime,
    db_path: str = DEFAULT_DB_PATH
) -> None:
    """Insert or overwrite a cache entry, resetting its creation time."""
    conn = get_connection(db_path)
    try:
        conn.execute("""
            INSERT INTO system_cache (key, value, created_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                created_at = excluded.created_at
        """, (key, json.dumps(value, ensure_ascii=False), created_at.isoformat()))
        conn.commit()
    finally:
        conn.close()


# --- AI configuration ------------------------------------------------------

def insert_ai_model(model: AIModel, db_path: str = DEFAULT_DB_PATH) -> int:
    """Insert a model reference and return its id."""
    conn = get_connection(db_path)
    try:
        cursor = conn.execute("""
            INSERT INTO ai_models (model_name, provider, provider_model_id, api_endpoint, is_active)
            VALUES (?, ?, ?, ?, ?)
        """, (
            model.model_name,
            model.provider,
            model.provider_model_id,
            model.api_endpoint,
            int(model.is_active)
        ))
        conn.commit()
        return cursor.lastrowid
    finally:
        conn.close()


def insert_configuration(config: AIConfiguration, db_path: str = DEFAULT_DB_PATH) -> int:
    """Insert an AI configuration, inserting its model first when it has no id.

    Raises:
        sqlite3.IntegrityError: If another active configuration already
            exists for the same (level, identifier)
    """
    model_id = config.model.id
    if model_id is None:
        model_id = insert_ai_model(config.model, db_path)

    conn = get_connection(db_path)
    try:
        cursor = conn.execute("""
            INSERT INTO ai_configurations
            (config_level, level_identifier, model_id, system_prompt, temperature,
             top_p, max_tokens, frequency_penalty, presence_penalty, is_active)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            config.level.value,
            config.identifier,
            model_id,
            config.system_prompt,
            config.temperature,
            config.top_p,
            config.max_tokens,
            config.frequency_penalty,
            config.presence_penalty,
            int(config.is_active)
        ))
        conn.commit()
        return cursor.lastrowid
    finally:
        conn.close()


def fetch_active_configuration(
    level: ConfigLevel,
    identifier: Optional[str] = None,
    db_path: str = DEFAULT_DB_PATH
) -> Optional[AIConfiguration]:
    """Fetch the active configuration for a level, joined with its model.

    Args:
        level: Hierarchy level to query
        identifier: Plan or service name; ignored for the global level
        db_path: Path to SQLite database file

    Returns:
        The active configuration, or None when the level has none
    """
    conn = get_connection(db_path)
    try:
        query = """
            SELECT c.id, c.config_level, c.level_identifier, c.system_prompt,
                   c.temperature, c.top_p, c.max_tokens, c.frequency_penalty,
                   c.presence_penalty, c.is_active,
                   m.id AS model_id, m.model_name, m.provider, m.provider_model_id,
                   m.api_endpoint, m.is_active AS model_active
            FROM ai_configurations c
            JOIN ai_models m ON m.id = c.model_id
            WHERE c.config_level = ? AND c.is_active = 1
        """
        params: List[Any] = [level.value]
        if level != ConfigLevel.GLOBAL:
            query += " AND c.level_identifier = ?"
            params.append(identifier)
        query += " ORDER BY c.id DESC LIMIT 1"

        row = conn.execute(query, params).fetchone()
        if row is None:
            return None

        model = AIModel(
            id=row["model_id"],
            model_name=row["model_name"],
            provider=row["provider"],
            provider_model_id=row["provider_model_id"],
            api_endpoint=row["api_endpoint"],
            is_active=bool(row["model_active"])
        )
        return AIConfiguration(
            id=row["id"],
            level=ConfigLevel(row["config_level"]),
            identifier=row["level_identifier"],
            model=model,
            system_prompt=row["system_prompt"] or "",
            temperature=_or_default(row["temperature"], DEFAULT_TEMPERATURE),
            top_p=_or_default(row["top_p"], DEFAULT_TOP_P),
            max_tokens=_or_default(row["max_tokens"], DEFAULT_MAX_TOKENS),
            frequency_penalty=_or_default(row["frequency_penalty"], DEFAULT_FREQUENCY_PENALTY),
            presence_penalty=_or_default(row["presence_penalty"], DEFAULT_PRESENCE_PENALTY),
            is_active=bool(row["is_active"])
        )
    finally:
        conn.close()


def _or_default(value, default):
    return default if value is None else value


# --- provider registry -----------------------------------------------------

def upsert_provider_connection(
    provider: ProviderConnection,
    db_path: str = DEFAULT_DB_PATH
) -> None:
    """Insert or replace the connection details of a provider."""
    conn = get_connection(db_path)
    try:
        conn.execute("""
            INSERT INTO provider_configurations (provider_name, api_endpoint, api_key, is_active)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(provider_name) DO UPDATE SET
                api_endpoint = excluded.api_endpoint,
                api_key = excluded.api_key,
                is_active = excluded.is_active
        """, (
            provider.provider_name,
            provider.api_endpoint,
            provider.api_key,
            int(provider.is_active)
        ))
        conn.commit()
    finally:
        conn.close()


def fetch_provider_connection(
    provider_name: str,
    db_path: str = DEFAULT_DB_PATH
) -> Optional[ProviderConnection]:
    """Fetch a provider's registry row, active or not."""
    conn = get_connection(db_path)
    try:
        row = conn.execute("""
            SELECT provider_name, api_endpoint, api_key, is_active
            FROM provider_configurations WHERE provider_name = ?
        """, (provider_name,)).fetchone()
        if row is None:
            return None
        return ProviderConnection(
            provider_name=row["provider_name"],
            api_endpoint=row["api_endpoint"],
            api_key=row["api_key"],
            is_active=bool(row["is_active"])
        )
    finally:
        conn.close()


# --- usage ledger and counters ---------------------------------------------

def insert_usage_metric(metric: UsageMetric, db_path: str = DEFAULT_DB_PATH) -> None:
    """Append a single provider call to the usage ledger.

    Args:
        metric: The usage record to store
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            INSERT INTO ai_usage_metrics
            (timestamp, user_id, model_name, service_type, tokens_input, tokens_output,
             estimated_cost, response_time_ms, success, error_type)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            metric.timestamp.isoformat(),
            metric.user_id,
            metric.model_name,
            metric.service_type,
            metric.tokens_input,
            metric.tokens_output,
            str(metric.estimated_cost),
            metric.response_time_ms,
            int(metric.success),
            metric.error_type
        ))
        conn.commit()
    finally:
        conn.close()


def fetch_recent_usage_metrics(
    service_type: Optional[str] = None,
    user_id: Optional[str] = None,
    limit: int = 100,
    db_path: str = DEFAULT_DB_PATH
) -> List[UsageMetric]:
    """Fetch recent usage records, newest first, optionally filtered.

    Args:
        service_type: Optional filter for a specific service
        user_id: Optional filter for a specific user
        limit: Maximum number of records to return
        db_path: Path to SQLite database file

    Returns:
        List of usage metrics ordered by timestamp (newest first)
    """
    conn = get_connection(db_path)
    try:
        query = """
            SELECT timestamp, user_id, model_name, service_type, tokens_input,
                   tokens_output, estimated_cost, response_time_ms, success, error_type
            FROM ai_usage_metrics
        """
        params: List[Any] = []
        conditions = []

        if service_type:
            conditions.append("service_type = ?")
            params.append(service_type)
        if user_id:
            conditions.append("user_id = ?")
            params.append(user_id)

        if conditions:
            query += " WHERE " + " AND ".join(conditions)

        query += " ORDER BY timestamp DESC, id DESC LIMIT ?"
        params.append(limit)

        return [_row_to_usage_metric(row) for row in conn.execute(query, params).fetchall()]
    finally:
        conn.close()


def _row_to_usage_metric(row) -> UsageMetric:
    return UsageMetric(
        timestamp=_parse_timestamp(row["timestamp"]),
        user_id=row["user_id"],
        model_name=row["model_name"],
        service_type=row["service_type"],
        tokens_input=row["tokens_input"],
        tokens_output=row["tokens_output"],
        estimated_cost=Decimal(row["estimated_cost"]),
        response_time_ms=row["response_time_ms"],
        success=bool(row["success"]),
        error_type=row["error_type"]
    )


def increment_global_metric(
    metric_type: str,
    day: date,
    amount: int = 1,
    db_path: str = DEFAULT_DB_PATH
) -> None:
    """Atomically add `amount` to the per-day aggregate counter."""
    conn = get_connection(db_path)
    try:
        conn.execute("""
            INSERT INTO usage_metrics (metric_type, date, metric_value)
            VALUES (?, ?, ?)
            ON CONFLICT(metric_type, date) DO UPDATE SET
                metric_value = metric_value + excluded.metric_value
        """, (metric_type, day.isoformat(), amount))
        conn.commit()
    finally:
        conn.close()


def fetch_global_metric(metric_type: str, day: date, db_path: str = DEFAULT_DB_PATH) -> int:
    """Return the counter value for a day, 0 when no row exists."""
    conn = get_connection(db_path)
    try:
        row = conn.execute(
            "SELECT metric_value FROM usage_metrics WHERE metric_type = ? AND date = ?",
            (metric_type, day.isoformat())
        ).fetchone()
        return row["metric_value"] if row else 0
    finally:
        conn.close()


def increment_feature_usage(
    user_id: str,
    feature: str,
    period_start: date,
    period_end: date,
    db_path: str = DEFAULT_DB_PATH
) -> None:
    """Atomically add one use of a feature to the user's period counter."""
    conn = get_connection(db_path)
    try:
        conn.execute("""
            INSERT INTO usage_tracking (user_id, feature, period_start, period_end, count)
            VALUES (?, ?, ?, ?, 1)
            ON CONFLICT(user_id, feature, period_start) DO UPDATE SET
                count = count + 1
        """, (user_id, feature, period_start.isoformat(), period_end.isoformat()))
        conn.commit()
    finally:
        conn.close()


def fetch_feature_usage(
    user_id: str,
    feature: str,
    period_start: date,
    db_path: str = DEFAULT_DB_PATH
) -> Optional[FeatureUsage]:
    """Fetch the user's counter for the period starting at `period_start`."""
    conn = get_connection(db_path)
    try:
        row = conn.execute("""
            SELECT user_id, feature, period_start, period_end, count
            FROM usage_tracking
            WHERE user_id = ? AND feature = ? AND period_start = ?
        """, (user_id, feature, period_start.isoformat())).fetchone()
        if row is None:
            return None
        return FeatureUsage(
            user_id=row["user_id"],
            feature=row["feature"],
            period_start=date.fromisoformat(row["period_start"]),
            period_end=date.fromisoformat(row["period_end"]),
            count=row["count"]
        )
    finally:
        conn.close()


# --- error log -------------------------------------------------------------

def upsert_error_log(
    error_type: str,
    error_message: str,
    fingerprint: str,
    occurred_at: datetime,
    endpoint: Optional[str] = None,
    user_id: Optional[str] = None,
    db_path: str = DEFAULT_DB_PATH
) -> None:
    """Bump the open entry for (error_type, fingerprint) or create one.

    Runs in an immediate transaction so concurrent writers cannot both
    insert a new open entry for the same failure.
    """
    conn = get_connection(db_path)
    try:
        conn.execute("BEGIN IMMEDIATE")
        cursor = conn.execute("""
            UPDATE error_logs
            SET frequency = frequency + 1, last_occurrence = ?
            WHERE error_type = ? AND fingerprint = ? AND resolved = 0
        """, (occurred_at.isoformat(), error_type, fingerprint))
        if cursor.rowcount == 0:
            conn.execute("""
                INSERT INTO error_logs
                (error_type, error_message, fingerprint, endpoint, user_id,
                 first_occurrence, last_occurrence, frequency, resolved)
                VALUES (?, ?, ?, ?, ?, ?, ?, 1, 0)
            """, (
                error_type,
                error_message,
                fingerprint,
                endpoint,
                user_id,
                occurred_at.isoformat(),
                occurred_at.isoformat()
            ))
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def fetch_error_logs(
    include_resolved: bool = False,
    limit: int = 100,
    db_path: str = DEFAULT_DB_PATH
) -> List[ErrorLogEntry]:
    """Fetch error log entries, most recently seen first."""
    conn = get_connection(db_path)
    try:
        query = """
            SELECT id, error_type, error_message, fingerprint, endpoint, user_id,
                   first_occurrence, last_occurrence, frequency, resolved
            FROM error_logs
        """
        if not include_resolved:
            query += " WHERE resolved = 0"
        query += " ORDER BY last_occurrence DESC LIMIT ?"

        entries = []
        for row in conn.execute(query, (limit,)).fetchall():
            entries.append(ErrorLogEntry(
                id=row["id"],
                error_type=row["error_type"],
                error_message=row["error_message"],
                fingerprint=row["fingerprint"],
                endpoint=row["endpoint"],
                user_id=row["user_id"],
                first_occurrence=_parse_timestamp(row["first_occurrence"]),
                last_occurrence=_parse_timestamp(row["last_occurrence"]),
                frequency=row["frequency"],
                resolved=bool(row["resolved"])
            ))
        return entries
    finally:
        conn.close()


# --- subscriptions and auth ------------------------------------------------

def upsert_plan(plan: SubscriptionPlan, db_path: str = DEFAULT_DB_PATH) -> None:
    """Insert or replace a subscription plan and its feature map."""
    conn = get_connection(db_path)
    try:
        conn.execute("""
            INSERT INTO subscription_plans (name, features, is_active)
            VALUES (?, ?, ?)
            ON CONFLICT(name) DO UPDATE SET
                features = excluded.features,
                is_active = excluded.is_active
        """, (plan.name, json.dumps(plan.features), int(plan.is_active)))
        conn.commit()
    finally:
        conn.close()


def insert_subscription(
    user_id: str,
    plan_name: str,
    status: str = "active",
    db_path: str = DEFAULT_DB_PATH
) -> None:
    """Attach a user to a plan."""
    conn = get_connection(db_path)
    try:
        conn.execute(
            "INSERT INTO user_subscriptions (user_id, plan_name, status) VALUES (?, ?, ?)",
            (user_id, plan_name, status)
        )
        conn.commit()
    finally:
        conn.close()


def fetch_active_subscription(
    user_id: str,
    db_path: str = DEFAULT_DB_PATH
) -> Optional[Subscription]:
    """Fetch the user's newest active subscription joined with its plan."""
    conn = get_connection(db_path)
    try:
        row = conn.execute("""
            SELECT s.user_id, s.status, p.name, p.features, p.is_active
            FROM user_subscriptions s
            JOIN subscription_plans p ON p.name = s.plan_name
            WHERE s.user_id = ? AND s.status = 'active'
            ORDER BY s.id DESC LIMIT 1
        """, (user_id,)).fetchone()
        if row is None:
            return None
        plan = SubscriptionPlan(
            name=row["name"],
            features=json.loads(row["features"] or "{}"),
            is_active=bool(row["is_active"])
        )
        return Subscription(user_id=row["user_id"], plan=plan, status=row["status"])
    finally:
        conn.close()


def insert_auth_session(session: AuthSession, db_path: str = DEFAULT_DB_PATH) -> None:
    """Register a bearer token issued by the auth service."""
    conn = get_connection(db_path)
    try:
        conn.execute(
            "INSERT OR REPLACE INTO auth_sessions (token, user_id, expires_at) VALUES (?, ?, ?)",
            (
                session.token,
                session.user_id,
                session.expires_at.isoformat() if session.expires_at else None
            )
        )
        conn.commit()
    finally:
        conn.close()


def fetch_auth_session(token: str, db_path: str = DEFAULT_DB_PATH) -> Optional[AuthSession]:
    conn = get_connection(db_path)
    try:
        row = conn.execute(
            "SELECT token, user_id, expires_at FROM auth_sessions WHERE token = ?",
            (token,)
        ).fetchone()
        if row is None:
            return None
        return AuthSession(
            token=row["token"],
            user_id=row["user_id"],
            expires_at=_parse_timestamp(row["expires_at"])
        )
    finally:
        conn.close()


# --- analysis log ----------------------------------------------------------

def insert_analysis_log(log: AnalysisLog, db_path: str = DEFAULT_DB_PATH) -> None:
    """Append one answered analysis to the history ledger."""
    conn = get_connection(db_path)
    try:
        conn.execute("""
            INSERT INTO funnel_analysis_logs
            (timestamp, user_id, ad_text, landing_page_text, coherence_score,
             suggestions, optimized_ad, processing_time_ms, cache_hit)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            log.timestamp.isoformat(),
            log.user_id,
            log.ad_text,
            log.landing_page_text,
            log.coherence_score,
            json.dumps(log.suggestions, ensure_ascii=False),
            log.optimized_ad,
            log.processing_time_ms,
            int(log.cache_hit)
        ))
        conn.commit()
    finally:
        conn.close()


def fetch_analysis_logs(
    user_id: Optional[str] = None,
    limit: int = 100,
    db_path: str = DEFAULT_DB_PATH
) -> List[AnalysisLog]:
    """Fetch recent analysis logs, newest first."""
    conn = get_connection(db_path)
    try:
        query = """
            SELECT timestamp, user_id, ad_text, landing_page_text, coherence_score,
                   suggestions, optimized_ad, processing_time_ms, cache_hit
            FROM funnel_analysis_logs
        """
        params: List[Any] = []
        if user_id:
            query += " WHERE user_id = ?"
            params.append(user_id)
        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        return [
            AnalysisLog(
                timestamp=_parse_timestamp(row["timestamp"]),
                user_id=row["user_id"],
                ad_text=row["ad_text"],
                landing_page_text=row["landing_page_text"],
                coherence_score=row["coherence_score"],
                suggestions=json.loads(row["suggestions"]),
                optimized_ad=row["optimized_ad"],
                processing_time_ms=row["processing_time_ms"],
                cache_hit=bool(row["cache_hit"])
            )
            for row in conn.execute(query, params).fetchall()
        ]
    finally:
        conn.close()


class UsageRepository:
    """Read-side access to the usage ledger for reporting.

    Wraps the module-level queries with a fixed database path so the CLI
    can pass a single object around.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def get_recent_metrics(
        self,
        service_type: Optional[str] = None,
        user_id: Optional[str] = None,
        limit: int = 100
    ) -> List[UsageMetric]:
        return fetch_recent_usage_metrics(
            service_type=service_type,
            user_id=user_id,
            limit=limit,
            db_path=self.db_path
        )

    def get_usage_stats(
        self,
        service_type: Optional[str] = None,
        days: int = 30
    ) -> Dict[str, Any]:
        """Get usage statistics for the specified time period.

        Args:
            service_type: Optional filter for a specific service
            days: Number of days to include in the statistics

        Returns:
            Dictionary with request counts, token totals and Decimal cost
        """
        conn = get_connection(self.db_path)
        try:
            cutoff = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
            query = """
                SELECT success, tokens_input, tokens_output, estimated_cost, response_time_ms
                FROM ai_usage_metrics
                WHERE timestamp >= ?
            """
            params: List[Any] = [cutoff]
            if service_type:
                query += " AND service_type = ?"
                params.append(service_type)

            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()

        total_cost = sum((Decimal(row["estimated_cost"]) for row in rows), Decimal("0"))
        successful = sum(1 for row in rows if row["success"])
        avg_latency = (
            sum(row["response_time_ms"] for row in rows) / len(rows) if rows else 0.0
        )
        return {
            "total_requests": len(rows),
            "successful_requests": successful,
            "failed_requests": len(rows) - successful,
            "total_tokens": sum(row["tokens_input"] + row["tokens_output"] for row in rows),
            "total_cost": total_cost,
            "avg_response_time_ms": avg_latency
        }
