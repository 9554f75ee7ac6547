"""
Create the token cache tables.

- tokens: one row per CoinGecko id with the last known good snapshot.
- price_history: the last fetched chart series per token.

Safe to re-run: tables that already exist (e.g. created by
`create_tables` at boot) are left alone.
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

# --- Revision metadata ---
revision = '20261018_create_token_cache'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()
    existing_tables = inspect(bind).get_table_names()

    # SQLite has no exact NUMERIC; decimals are kept as plain-notation strings there.
    def dec():
        return sa.String(80) if bind.dialect.name == "sqlite" else sa.Numeric()

    if "tokens" not in existing_tables:
        op.create_table(
            "tokens",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("token_id", sa.String(128), nullable=False),
            sa.Column("symbol", sa.String(64), nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("current_price", dec(), nullable=False),
            sa.Column("market_cap", dec(), nullable=False),
            sa.Column("volume_24h", dec(), nullable=False),
            sa.Column("price_change_24h", dec(), nullable=False),
            sa.Column("price_change_percentage_24h", sa.Float(), nullable=False),
            sa.Column("high_24h", dec(), nullable=True),
            sa.Column("low_24h", dec(), nullable=True),
            sa.Column("circulating_supply", dec(), nullable=True),
            sa.Column("total_supply", dec(), nullable=True),
            sa.Column("ath", dec(), nullable=True),
            sa.Column("ath_change_percentage", sa.Float(), nullable=True),
            sa.Column("atl", dec(), nullable=True),
            sa.Column("atl_change_percentage", sa.Float(), nullable=True),
            sa.Column("image", sa.String(512), nullable=True),
            sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
            sa.Column("is_favorite", sa.Boolean(), server_default=sa.false(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
        op.create_index("ix_tokens_token_id", "tokens", ["token_id"], unique=True)
        op.create_index("ix_tokens_symbol", "tokens", ["symbol"])
        op.create_index("ix_tokens_is_favorite", "tokens", ["is_favorite"])

    if "price_history" not in existing_tables:
        op.create_table(
            "price_history",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("token_id", sa.String(128), nullable=False),
            sa.Column("days", sa.Integer(), nullable=False),
            sa.Column("prices", sa.JSON(), nullable=False),
            sa.Column("market_caps", sa.JSON(), nullable=False),
            sa.Column("total_volumes", sa.JSON(), nullable=False),
            sa.Column("fetched_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_price_history_token_id", "price_history", ["token_id"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_price_history_token_id", table_name="price_history")
    op.drop_table("price_history")
    op.drop_index("ix_tokens_is_favorite", table_name="tokens")
    op.drop_index("ix_tokens_symbol", table_name="tokens")
    op.drop_index("ix_tokens_token_id", table_name="tokens")
    op.drop_table("tokens")
