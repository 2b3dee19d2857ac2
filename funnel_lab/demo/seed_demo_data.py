# funnel_lab/demo/seed_demo_data.py

from datetime import datetime, timedelta, timezone

from funnel_lab.storage.db import DEFAULT_DB_PATH
from funnel_lab.storage.models import (
    AIConfiguration,
    AIModel,
    AuthSession,
    ConfigLevel,
    ProviderConnection,
    SubscriptionPlan,
)
from funnel_lab.storage.repository import (
    fetch_active_configuration,
    fetch_active_subscription,
    initialize_schema,
    insert_auth_session,
    insert_configuration,
    insert_subscription,
    upsert_plan,
    upsert_provider_connection,
)
from funnel_lab.sdk.openai_client import API_KEY_PLACEHOLDER

DEMO_USER_ID = "demo-user"
DEMO_TOKEN = "demo-token"

DEMO_PLANS = [
    SubscriptionPlan(name="free", features={"funnel_analysis": False}),
    SubscriptionPlan(name="starter", features={"funnel_analysis": 10}),
    SubscriptionPlan(name="pro", features={"funnel_analysis": True, "models": "premium"}),
]


def seed_demo_data(db_path: str = DEFAULT_DB_PATH, token_ttl_days: int = 30) -> str:
    """Populate a database with a plan, a subscribed user and AI configurations.

    Safe to run repeatedly; existing rows are kept.

    Returns:
        Bearer token of the demo user
    """
    initialize_schema(db_path)

    for plan in DEMO_PLANS:
        upsert_plan(plan, db_path)

    # Key comes from OPENAI_API_KEY
    upsert_provider_connection(ProviderConnection(
        provider_name="openai",
        api_endpoint="https://api.openai.com/v1",
        api_key=API_KEY_PLACEHOLDER,
        is_active=True
    ), db_path)

    gpt4o = AIModel(model_name="gpt-4o", provider="openai", provider_model_id="gpt-4o")
    gpt4o_mini = AIModel(model_name="gpt-4o-mini", provider="openai", provider_model_id="gpt-4o-mini")

    configs = [
        AIConfiguration(level=ConfigLevel.GLOBAL, model=gpt4o_mini),
        AIConfiguration(level=ConfigLevel.PLAN, identifier="pro", model=gpt4o),
        AIConfiguration(
            level=ConfigLevel.SERVICE,
            identifier="funnel_analysis",
            model=gpt4o,
            temperature=0.4,
            max_tokens=1500
        ),
    ]
    for config in configs:
        if fetch_active_configuration(config.level, config.identifier, db_path) is None:
            insert_configuration(config, db_path)

    if fetch_active_subscription(DEMO_USER_ID, db_path) is None:
        insert_subscription(DEMO_USER_ID, "pro", db_path=db_path)

    insert_auth_session(AuthSession(
        token=DEMO_TOKEN,
        user_id=DEMO_USER_ID,
        expires_at=datetime.now(timezone.utc) + timedelta(days=token_ttl_days)
    ), db_path)

    return DEMO_TOKEN


if __name__ == "__main__":
    seed_demo_data()
    print("Demo plans, configurations and token inserted")
