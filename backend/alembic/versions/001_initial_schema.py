"""Initial schema: tournaments, teams, matches, registrations, events, audit log, notifications

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create tournament table
    op.create_table(
        "tournament",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=True),
        sa.Column("creator_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("format", sa.String(), nullable=False),
        sa.Column("team_formation", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("status_before_postpone", sa.String(), nullable=True),
        sa.Column("start_date", sa.DateTime(), nullable=False),
        sa.Column("end_date", sa.DateTime(), nullable=False),
        sa.Column("registration_deadline", sa.DateTime(), nullable=True),
        sa.Column("postponed_to_date", sa.DateTime(), nullable=True),
        sa.Column("max_teams", sa.Integer(), nullable=False),
        sa.Column("max_participants", sa.Integer(), nullable=True),
        sa.Column("min_players_per_team", sa.Integer(), nullable=True),
        sa.Column("max_players_per_team", sa.Integer(), nullable=True),
        sa.Column("entry_fee", sa.Numeric(), nullable=False, server_default="0"),
        sa.Column("fee_type", sa.String(), nullable=True),
        sa.Column("points_win", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("points_tie", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("points_loss", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tiebreaker_order", sa.JSON(), nullable=True),
        sa.Column("playoff_teams_count", sa.Integer(), nullable=True),
        sa.Column("third_place_match", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("bracket_reset", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("venue", sa.String(), nullable=True),
        sa.Column("lifecycle", sa.String(), nullable=False, server_default="Active"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("published_at", sa.DateTime(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tournament_organization_id", "tournament", ["organization_id"])

    # Create tournament_team table
    op.create_table(
        "tournament_team",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("captain_user_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("waitlist_position", sa.Integer(), nullable=True),
        sa.Column("seed", sa.Integer(), nullable=True),
        sa.Column("final_placement", sa.Integer(), nullable=True),
        sa.Column("has_bye", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("wins", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("losses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("ties", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("goals_for", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("goals_against", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
        sa.UniqueConstraint("tournament_id", "seed", name="uq_tournament_seed"),
        sa.UniqueConstraint("tournament_id", "name", name="uq_tournament_team_name"),
    )
    op.create_index("ix_tournament_team_tournament_id", "tournament_team", ["tournament_id"])

    # Create tournament_match table (successor pointers are self-references)
    op.create_table(
        "tournament_match",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("home_team_id", sa.Integer(), nullable=True),
        sa.Column("away_team_id", sa.Integer(), nullable=True),
        sa.Column("round", sa.Integer(), nullable=False),
        sa.Column("match_number", sa.Integer(), nullable=False),
        sa.Column("bracket_position", sa.String(), nullable=True),
        sa.Column("bracket_type", sa.String(), nullable=True),
        sa.Column("is_bye", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("scheduled_time", sa.DateTime(), nullable=True),
        sa.Column("venue", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("home_score", sa.Integer(), nullable=True),
        sa.Column("away_score", sa.Integer(), nullable=True),
        sa.Column("winner_team_id", sa.Integer(), nullable=True),
        sa.Column("forfeit_reason", sa.String(), nullable=True),
        sa.Column("next_match_id", sa.Integer(), nullable=True),
        sa.Column("next_match_slot", sa.String(), nullable=True),
        sa.Column("loser_next_match_id", sa.Integer(), nullable=True),
        sa.Column("loser_next_match_slot", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
        sa.ForeignKeyConstraint(["home_team_id"], ["tournament_team.id"]),
        sa.ForeignKeyConstraint(["away_team_id"], ["tournament_team.id"]),
        sa.ForeignKeyConstraint(["winner_team_id"], ["tournament_team.id"]),
        sa.ForeignKeyConstraint(["next_match_id"], ["tournament_match.id"]),
        sa.ForeignKeyConstraint(["loser_next_match_id"], ["tournament_match.id"]),
        sa.UniqueConstraint("tournament_id", "bracket_type", "round", "match_number", name="uq_match_position"),
    )
    op.create_index("ix_tournament_match_tournament_id", "tournament_match", ["tournament_id"])

    # Create tournament_registration table
    op.create_table(
        "tournament_registration",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("position", sa.String(), nullable=True),
        sa.Column("waitlist_position", sa.Integer(), nullable=True),
        sa.Column("promoted_at", sa.DateTime(), nullable=True),
        sa.Column("assigned_team_id", sa.Integer(), nullable=True),
        sa.Column("payment_status", sa.String(), nullable=True),
        sa.Column("payment_marked_at", sa.DateTime(), nullable=True),
        sa.Column("payment_verified_at", sa.DateTime(), nullable=True),
        sa.Column("payment_deadline_at", sa.DateTime(), nullable=True),
        sa.Column("registered_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
        sa.ForeignKeyConstraint(["assigned_team_id"], ["tournament_team.id"]),
    )
    op.create_index("ix_tournament_registration_tournament_id", "tournament_registration", ["tournament_id"])
    op.create_index("ix_tournament_registration_user_id", "tournament_registration", ["user_id"])

    # Create event table
    op.create_table(
        "event",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=True),
        sa.Column("creator_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("event_date", sa.DateTime(), nullable=False),
        sa.Column("venue", sa.String(), nullable=True),
        sa.Column("max_players", sa.Integer(), nullable=False),
        sa.Column("cost", sa.Numeric(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("lifecycle", sa.String(), nullable=False, server_default="Active"),
        sa.Column("player_reminder_sent_at", sa.DateTime(), nullable=True),
        sa.Column("organizer_payment_reminder_sent_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_event_organization_id", "event", ["organization_id"])

    # Create event_registration table
    op.create_table(
        "event_registration",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("waitlist_position", sa.Integer(), nullable=True),
        sa.Column("promoted_at", sa.DateTime(), nullable=True),
        sa.Column("payment_status", sa.String(), nullable=True),
        sa.Column("payment_marked_at", sa.DateTime(), nullable=True),
        sa.Column("payment_verified_at", sa.DateTime(), nullable=True),
        sa.Column("payment_deadline_at", sa.DateTime(), nullable=True),
        sa.Column("registered_at", sa.DateTime(), nullable=False),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["event_id"], ["event.id"]),
    )
    op.create_index("ix_event_registration_event_id", "event_registration", ["event_id"])
    op.create_index("ix_event_registration_user_id", "event_registration", ["user_id"])

    # Create tournament_audit_log table (append-only)
    op.create_table(
        "tournament_audit_log",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("from_status", sa.String(), nullable=True),
        sa.Column("to_status", sa.String(), nullable=True),
        sa.Column("entity_type", sa.String(), nullable=True),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("old_value", sa.JSON(), nullable=True),
        sa.Column("new_value", sa.JSON(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
    )
    op.create_index("ix_tournament_audit_log_tournament_id", "tournament_audit_log", ["tournament_id"])
    op.create_index("ix_tournament_audit_log_timestamp", "tournament_audit_log", ["timestamp"])

    # Create notification + user_device tables
    op.create_table(
        "notification",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("body", sa.String(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("push_status", sa.String(), nullable=False, server_default="skipped"),
        sa.Column("error_message", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("read_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notification_user_id", "notification", ["user_id"])
    op.create_index("ix_notification_created_at", "notification", ["created_at"])

    op.create_table(
        "user_device",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("push_token", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_device_user_id", "user_device", ["user_id"])


def downgrade() -> None:
    op.drop_table("user_device")
    op.drop_table("notification")
    op.drop_table("tournament_audit_log")
    op.drop_table("event_registration")
    op.drop_table("event")
    op.drop_table("tournament_registration")
    op.drop_table("tournament_match")
    op.drop_table("tournament_team")
    op.drop_table("tournament")
