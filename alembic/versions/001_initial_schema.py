"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-16 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'profiles',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('full_name', sa.String(), nullable=True),
        sa.Column('twilio_account_sid', sa.String(), nullable=True),
        sa.Column('twilio_auth_token', sa.String(), nullable=True),
        sa.Column('twilio_phone_number', sa.String(), nullable=True),
        sa.Column('elevenlabs_api_key', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'prospects',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('first_name', sa.String(), nullable=True),
        sa.Column('last_name', sa.String(), nullable=True),
        sa.Column('phone_number', sa.String(), nullable=True),
        sa.Column('property_address', sa.String(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('last_call_attempted', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_prospects_user_id'), 'prospects', ['user_id'], unique=False)

    op.create_table(
        'agent_configs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('config_name', sa.String(), nullable=False),
        sa.Column('system_prompt', sa.Text(), nullable=False),
        sa.Column('goal_extraction_prompt', sa.Text(), nullable=True),
        sa.Column('llm_provider', sa.String(), nullable=False),
        sa.Column('llm_model', sa.String(), nullable=False),
        sa.Column('temperature', sa.Float(), nullable=False),
        sa.Column('voice_provider', sa.String(), nullable=False),
        sa.Column('voice_id', sa.String(), nullable=True),
        sa.Column('elevenlabs_agent_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_agent_configs_user_id'), 'agent_configs', ['user_id'], unique=False)

    op.create_table(
        'call_logs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('prospect_id', sa.String(length=36), nullable=True),
        sa.Column('agent_config_id', sa.String(length=36), nullable=True),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('twilio_call_sid', sa.String(), nullable=True),
        sa.Column('call_status', sa.String(), nullable=False),
        sa.Column('call_duration_seconds', sa.Integer(), nullable=True),
        sa.Column('recording_url', sa.String(), nullable=True),
        sa.Column('transcript', sa.Text(), nullable=True),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('extracted_data', sa.JSON(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['prospect_id'], ['prospects.id'], ),
        sa.ForeignKeyConstraint(['agent_config_id'], ['agent_configs.id'], ),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_call_logs_prospect_id'), 'call_logs', ['prospect_id'], unique=False)
    op.create_index(op.f('ix_call_logs_user_id'), 'call_logs', ['user_id'], unique=False)
    op.create_index(op.f('ix_call_logs_twilio_call_sid'), 'call_logs', ['twilio_call_sid'], unique=True)

    op.create_table(
        'speech_clips',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('call_log_id', sa.String(length=36), nullable=True),
        sa.Column('content_type', sa.String(), nullable=False),
        sa.Column('audio', sa.LargeBinary(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['call_log_id'], ['call_logs.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_speech_clips_call_log_id'), 'speech_clips', ['call_log_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_speech_clips_call_log_id'), table_name='speech_clips')
    op.drop_table('speech_clips')
    op.drop_index(op.f('ix_call_logs_twilio_call_sid'), table_name='call_logs')
    op.drop_index(op.f('ix_call_logs_user_id'), table_name='call_logs')
    op.drop_index(op.f('ix_call_logs_prospect_id'), table_name='call_logs')
    op.drop_table('call_logs')
    op.drop_index(op.f('ix_agent_configs_user_id'), table_name='agent_configs')
    op.drop_table('agent_configs')
    op.drop_index(op.f('ix_prospects_user_id'), table_name='prospects')
    op.drop_table('prospects')
    op.drop_table('profiles')
