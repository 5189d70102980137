"""Baseline schema.

Creates the catalog tables (users, exercises, questions, question_choices,
ordering_items), the attempt tables, progression with its XP log, and the
badge tables.

Revision ID: 001_baseline
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_baseline"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id BIGSERIAL PRIMARY KEY,
            display_name VARCHAR(64),
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # --- Catalog ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS exercises (
            id BIGSERIAL PRIMARY KEY,
            title VARCHAR(200) NOT NULL,
            difficulty VARCHAR(16) NOT NULL DEFAULT 'medium',
            min_level INTEGER NOT NULL DEFAULT 1,
            time_limit_seconds INTEGER,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS questions (
            id BIGSERIAL PRIMARY KEY,
            exercise_id BIGINT NOT NULL REFERENCES exercises(id) ON DELETE CASCADE,
            type VARCHAR(32) NOT NULL,
            content TEXT NOT NULL DEFAULT '',
            position INTEGER NOT NULL DEFAULT 0,
            meta JSONB NOT NULL DEFAULT '{}'
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_questions_exercise_id
        ON questions(exercise_id)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS question_choices (
            id BIGSERIAL PRIMARY KEY,
            question_id BIGINT NOT NULL REFERENCES questions(id) ON DELETE CASCADE,
            content TEXT NOT NULL,
            is_correct BOOLEAN NOT NULL DEFAULT false,
            position INTEGER NOT NULL DEFAULT 0
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_question_choices_question_id
        ON question_choices(question_id)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS ordering_items (
            id BIGSERIAL PRIMARY KEY,
            question_id BIGINT NOT NULL REFERENCES questions(id) ON DELETE CASCADE,
            content TEXT NOT NULL,
            position INTEGER NOT NULL
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_ordering_items_question_id
        ON ordering_items(question_id)
    """)

    # --- Attempts ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS attempts (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            exercise_id BIGINT NOT NULL REFERENCES exercises(id) ON DELETE CASCADE,
            started_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            finished_at TIMESTAMPTZ,
            score INTEGER NOT NULL DEFAULT 0,
            reward VARCHAR(16),
            elapsed_seconds INTEGER NOT NULL DEFAULT 0
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_attempts_user_exercise
        ON attempts(user_id, exercise_id)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_attempts_user_finished
        ON attempts(user_id, finished_at)
        WHERE finished_at IS NOT NULL
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS attempt_answers (
            id BIGSERIAL PRIMARY KEY,
            attempt_id BIGINT NOT NULL REFERENCES attempts(id) ON DELETE CASCADE,
            question_id BIGINT NOT NULL REFERENCES questions(id) ON DELETE CASCADE,
            user_answer JSONB,
            correct BOOLEAN NOT NULL DEFAULT false,
            points_awarded INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_attempt_answer UNIQUE(attempt_id, question_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_attempt_answers_attempt_id
        ON attempt_answers(attempt_id)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS exercise_progress (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            exercise_id BIGINT NOT NULL REFERENCES exercises(id) ON DELETE CASCADE,
            attempts_count INTEGER NOT NULL DEFAULT 0,
            best_reward VARCHAR(16),
            best_score INTEGER NOT NULL DEFAULT 0,
            total_score BIGINT NOT NULL DEFAULT 0,
            completed BOOLEAN NOT NULL DEFAULT false,
            first_completed_at TIMESTAMPTZ,
            last_attempted_at TIMESTAMPTZ,
            CONSTRAINT uq_exercise_progress UNIQUE(user_id, exercise_id)
        )
    """)

    # --- Progression ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_progression (
            user_id BIGINT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
            total_xp BIGINT NOT NULL DEFAULT 0,
            level INTEGER NOT NULL DEFAULT 1,
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS xp_transactions (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            amount INTEGER NOT NULL,
            source VARCHAR(32) NOT NULL,
            source_id VARCHAR(128),
            idempotency_key VARCHAR(256) UNIQUE,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_xp_transactions_user
        ON xp_transactions(user_id)
    """)

    # --- Badges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS badge_definitions (
            id SERIAL PRIMARY KEY,
            key VARCHAR(64) UNIQUE NOT NULL,
            family VARCHAR(64) NOT NULL,
            tier INTEGER NOT NULL DEFAULT 1,
            title VARCHAR(128) NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            icon VARCHAR(64),
            category VARCHAR(32) NOT NULL,
            requirement_type VARCHAR(32) NOT NULL,
            requirement_value INTEGER NOT NULL DEFAULT 1,
            requirement_param VARCHAR(32),
            xp_reward INTEGER NOT NULL DEFAULT 0,
            is_secret BOOLEAN NOT NULL DEFAULT false,
            sort_order INTEGER NOT NULL DEFAULT 0
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_badge_definitions_family
        ON badge_definitions(family)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_badges (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            badge_id INTEGER NOT NULL REFERENCES badge_definitions(id),
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_user_badge UNIQUE(user_id, badge_id)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS badge_notifications (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            badge_id INTEGER NOT NULL REFERENCES badge_definitions(id),
            shown BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_badge_notification UNIQUE(user_id, badge_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_badge_notifications_unshown
        ON badge_notifications(user_id)
        WHERE shown = false
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS badge_notifications CASCADE")
    op.execute("DROP TABLE IF EXISTS user_badges CASCADE")
    op.execute("DROP TABLE IF EXISTS badge_definitions CASCADE")
    op.execute("DROP TABLE IF EXISTS xp_transactions CASCADE")
    op.execute("DROP TABLE IF EXISTS user_progression CASCADE")
    op.execute("DROP TABLE IF EXISTS exercise_progress CASCADE")
    op.execute("DROP TABLE IF EXISTS attempt_answers CASCADE")
    op.execute("DROP TABLE IF EXISTS attempts CASCADE")
    op.execute("DROP TABLE IF EXISTS ordering_items CASCADE")
    op.execute("DROP TABLE IF EXISTS question_choices CASCADE")
    op.execute("DROP TABLE IF EXISTS questions CASCADE")
    op.execute("DROP TABLE IF EXISTS exercises CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
