"""Learning Progress Schema

Creates the schema for lesson scoring, progress statistics and
recommendations:
- users, topics, lessons, questions: learners and the lesson catalog
- user_lesson_progress: best score / attempts / first completion per lesson
- learning_behaviors: per-user statistics root with optimistic version column
- skill_stats, question_type_stats, topic_progress: incremental statistics
- processed_events: completion events already applied per consumer
- recommendations: study recommendation queue

Revision ID: 001
Revises:
Create Date: 2026-10-12
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ===========================================
    # Users & Catalog
    # ===========================================
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(100), nullable=False, unique=True),
        sa.Column("english_level", sa.String(2), nullable=False, server_default="A1"),
        sa.Column("total_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
    )

    op.create_table(
        "topics",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("module_type", sa.String(20), nullable=False),
        sa.Column("level_required", sa.String(2), nullable=False, server_default="A1"),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_topics_module_type", "topics", ["module_type"])

    op.create_table(
        "lessons",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("topic_id", sa.Integer(), sa.ForeignKey("topics.id"), nullable=False),
        sa.Column("module_type", sa.String(20), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_lessons_topic_id", "lessons", ["topic_id"])

    op.create_table(
        "questions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("lesson_id", sa.Integer(), sa.ForeignKey("lessons.id"), nullable=False),
        sa.Column("question_type", sa.String(40), nullable=False),
        sa.Column("question_text", sa.Text(), nullable=True),
        sa.Column("points", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("explanation", sa.Text(), nullable=True),
        sa.Column("data", sa.JSON(), nullable=False),
    )
    op.create_index("ix_questions_lesson_id", "questions", ["lesson_id"])

    op.create_table(
        "user_lesson_progress",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("lesson_id", sa.Integer(), sa.ForeignKey("lessons.id"), nullable=False),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("best_score", sa.Float(), nullable=False, server_default="0"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "lesson_id", name="uq_user_lesson_progress"),
    )
    op.create_index(
        "ix_user_lesson_progress_user_id", "user_lesson_progress", ["user_id"]
    )

    # ===========================================
    # Learning Statistics
    # ===========================================
    op.create_table(
        "learning_behaviors",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, unique=True
        ),
        sa.Column("strongest_skill", sa.String(20), nullable=True),
        sa.Column("weakest_skill", sa.String(20), nullable=True),
        sa.Column("overall_accuracy", sa.Float(), nullable=False, server_default="0"),
        sa.Column("last_analyzed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
    )

    op.create_table(
        "skill_stats",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "behavior_id",
            sa.Integer(),
            sa.ForeignKey("learning_behaviors.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("module_type", sa.String(20), nullable=False),
        sa.Column("accuracy", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("correct_answers", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("longest_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("behavior_id", "module_type", name="uq_skill_stats_module"),
    )

    op.create_table(
        "question_type_stats",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "behavior_id",
            sa.Integer(),
            sa.ForeignKey("learning_behaviors.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("question_type", sa.String(40), nullable=False),
        sa.Column("accuracy", sa.Float(), nullable=False, server_default="0"),
        sa.Column("correct_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("wrong_count", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint(
            "behavior_id", "question_type", name="uq_question_type_stats_type"
        ),
    )

    op.create_table(
        "topic_progress",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "behavior_id",
            sa.Integer(),
            sa.ForeignKey("learning_behaviors.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("topic_id", sa.Integer(), nullable=False),
        sa.Column("topic_name", sa.String(200), nullable=False, server_default=""),
        sa.Column("completion_percentage", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total_lessons", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_lessons", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("average_score", sa.Float(), nullable=False, server_default="0"),
        sa.Column("completed_lesson_ids", sa.JSON(), nullable=False),
        sa.Column("last_active_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("behavior_id", "topic_id", name="uq_topic_progress_topic"),
    )

    op.create_table(
        "processed_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_id", sa.String(36), nullable=False),
        sa.Column("consumer", sa.String(50), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("event_id", "consumer", name="uq_processed_event_consumer"),
    )

    # ===========================================
    # Recommendations
    # ===========================================
    op.create_table(
        "recommendations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("reasoning", sa.Text(), nullable=True),
        sa.Column("target_skill", sa.String(20), nullable=True),
        sa.Column("target_lesson_id", sa.Integer(), nullable=True),
        sa.Column("target_topic_id", sa.Integer(), nullable=True),
        sa.Column("generated_content", sa.JSON(), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("is_shown", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_accepted", sa.Boolean(), nullable=True),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_approved", sa.Boolean(), nullable=True),
        sa.Column("approved_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("shown_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_recommendations_user_id", "recommendations", ["user_id"])
    op.create_index(
        "ix_recommendations_user_expires", "recommendations", ["user_id", "expires_at"]
    )


def downgrade() -> None:
    op.drop_index("ix_recommendations_user_expires", table_name="recommendations")
    op.drop_index("ix_recommendations_user_id", table_name="recommendations")
    op.drop_table("recommendations")
    op.drop_table("processed_events")
    op.drop_table("topic_progress")
    op.drop_table("question_type_stats")
    op.drop_table("skill_stats")
    op.drop_table("learning_behaviors")
    op.drop_index("ix_user_lesson_progress_user_id", table_name="user_lesson_progress")
    op.drop_table("user_lesson_progress")
    op.drop_index("ix_questions_lesson_id", table_name="questions")
    op.drop_table("questions")
    op.drop_index("ix_lessons_topic_id", table_name="lessons")
    op.drop_table("lessons")
    op.drop_index("ix_topics_module_type", table_name="topics")
    op.drop_table("topics")
    op.drop_table("users")
