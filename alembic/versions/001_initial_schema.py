"""Initial schema - keyword search jobs, results and tracked keywords

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'keyword_search_jobs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('strategy', sa.String(length=32), nullable=False),
        sa.Column('seed_category', sa.String(length=255), nullable=True),
        sa.Column('country', sa.String(length=2), nullable=False),
        sa.Column('searches_per_batch', sa.Integer(), nullable=False),
        sa.Column('interval_minutes', sa.Integer(), nullable=False),
        sa.Column('total_cycles', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('session_id', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('current_cycle', sa.Integer(), nullable=False),
        sa.Column('total_keywords', sa.Integer(), nullable=False),
        sa.Column('used_keywords', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_run_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_keyword_search_jobs_session_id', 'keyword_search_jobs', ['session_id'])
    op.create_index('ix_keyword_search_jobs_status', 'keyword_search_jobs', ['status'])

    op.create_table(
        'keyword_search_results',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('job_id', sa.String(length=36), nullable=False),
        sa.Column('keyword', sa.String(length=255), nullable=False),
        sa.Column('cycle_number', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('popularity', sa.Integer(), nullable=True),
        sa.Column('difficulty', sa.Integer(), nullable=True),
        sa.Column('competitor_count', sa.Integer(), nullable=True),
        sa.Column('opportunity_score', sa.Integer(), nullable=True),
        sa.Column('top_apps', sa.JSON(), nullable=True),
        sa.Column('related_terms', sa.JSON(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('is_tracked', sa.Boolean(), nullable=False),
        sa.Column('searched_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['job_id'], ['keyword_search_jobs.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_keyword_search_results_job_id', 'keyword_search_results', ['job_id'])
    op.create_index('ix_keyword_search_results_opportunity_score', 'keyword_search_results', ['opportunity_score'])

    op.create_table(
        'tracked_keywords',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('keyword', sa.String(length=255), nullable=False),
        sa.Column('country', sa.String(length=2), nullable=False),
        sa.Column('session_id', sa.String(length=255), nullable=False),
        sa.Column('popularity', sa.Integer(), nullable=True),
        sa.Column('difficulty', sa.Integer(), nullable=True),
        sa.Column('opportunity_score', sa.Integer(), nullable=True),
        sa.Column('competitor_count', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('keyword', 'country', 'session_id', name='uq_tracked_keyword_country_session'),
    )
    op.create_index('ix_tracked_keywords_keyword', 'tracked_keywords', ['keyword'])


def downgrade() -> None:
    op.drop_index('ix_tracked_keywords_keyword', table_name='tracked_keywords')
    op.drop_table('tracked_keywords')
    op.drop_index('ix_keyword_search_results_opportunity_score', table_name='keyword_search_results')
    op.drop_index('ix_keyword_search_results_job_id', table_name='keyword_search_results')
    op.drop_table('keyword_search_results')
    op.drop_index('ix_keyword_search_jobs_status', table_name='keyword_search_jobs')
    op.drop_index('ix_keyword_search_jobs_session_id', table_name='keyword_search_jobs')
    op.drop_table('keyword_search_jobs')
