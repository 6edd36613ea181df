"""Initial schema: persons, service catalog, requests, queue tickets, statistics

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18

This migration adds:
1. persons (resident and pending-guest records)
2. service_types (document catalog)
3. document_requests and document_request_items
4. queue_tickets (daily numbering, one active ticket per request)
5. sequence_counters (ticket, request and resident id sequences)
6. statistics_snapshots (per-purok cached rollups)
7. audit_events (append-only)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. PERSONS
    # ==========================================================================
    op.create_table('persons',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('external_id', sa.String(length=32), nullable=True),
        sa.Column('first_name', sa.String(length=128), nullable=False),
        sa.Column('middle_name', sa.String(length=128), nullable=False, server_default=''),
        sa.Column('last_name', sa.String(length=128), nullable=False),
        sa.Column('suffix', sa.String(length=16), nullable=True),
        sa.Column('last_name_key', sa.String(length=128), nullable=False),
        sa.Column('sex', sa.String(length=8), nullable=False),
        sa.Column('birthdate', sa.Date(), nullable=False),
        sa.Column('purok', sa.String(length=64), nullable=False),
        sa.Column('phase', sa.String(length=32), nullable=True),
        sa.Column('block', sa.String(length=32), nullable=True),
        sa.Column('lot', sa.String(length=32), nullable=True),
        sa.Column('is_pwd', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_senior_citizen', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_solo_parent', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_osy', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_ofw', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_registered_voter', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('employment_status', sa.String(length=16), nullable=True),
        sa.Column('contact_number', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id', name='pk_persons'),
        sa.UniqueConstraint('external_id', name='uq_persons_external_id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('persons', schema=None) as batch_op:
        batch_op.create_index('ix_persons_last_name_key', ['last_name_key'], unique=False)
        batch_op.create_index('ix_persons_birthdate', ['birthdate'], unique=False)
        batch_op.create_index('ix_persons_status_purok', ['status', 'purok'], unique=False)
        batch_op.create_index('ix_persons_purok', ['purok'], unique=False)
        batch_op.create_index('ix_persons_status', ['status'], unique=False)

    # ==========================================================================
    # 2. SERVICE CATALOG
    # ==========================================================================
    op.create_table('service_types',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('template_key', sa.String(length=128), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('requires_purpose', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_service_types'),
        sa.UniqueConstraint('name', name='uq_service_types_name'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('service_types', schema=None) as batch_op:
        batch_op.create_index('ix_service_types_is_active', ['is_active'], unique=False)

    # ==========================================================================
    # 3. DOCUMENT REQUESTS
    # ==========================================================================
    op.create_table('document_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('person_id', sa.Integer(), nullable=False),
        sa.Column('request_number', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('total_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('requested_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['person_id'], ['persons.id'], name='fk_document_requests_person_id_persons'),
        sa.PrimaryKeyConstraint('id', name='pk_document_requests'),
        sa.UniqueConstraint('request_number', name='uq_document_requests_request_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('document_requests', schema=None) as batch_op:
        batch_op.create_index('ix_document_requests_person_id', ['person_id'], unique=False)
        batch_op.create_index('ix_document_requests_status', ['status'], unique=False)
        batch_op.create_index('ix_document_requests_requested_at', ['requested_at'], unique=False)
        batch_op.create_index('ix_document_requests_status_requested', ['status', 'requested_at'], unique=False)

    op.create_table('document_request_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('request_id', sa.Integer(), nullable=False),
        sa.Column('service_type_id', sa.Integer(), nullable=False),
        sa.Column('purpose', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('printed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['request_id'], ['document_requests.id'], name='fk_document_request_items_request_id_document_requests'),
        sa.ForeignKeyConstraint(['service_type_id'], ['service_types.id'], name='fk_document_request_items_service_type_id_service_types'),
        sa.PrimaryKeyConstraint('id', name='pk_document_request_items'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('document_request_items', schema=None) as batch_op:
        batch_op.create_index('ix_document_request_items_request_id', ['request_id'], unique=False)
        batch_op.create_index('ix_document_request_items_service_type_id', ['service_type_id'], unique=False)
        batch_op.create_index('ix_document_request_items_status', ['status'], unique=False)
        batch_op.create_index('ix_document_request_items_request_status', ['request_id', 'status'], unique=False)

    # ==========================================================================
    # 4. QUEUE TICKETS
    # ==========================================================================
    op.create_table('queue_tickets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('request_id', sa.Integer(), nullable=False),
        sa.Column('active_request_id', sa.Integer(), nullable=True),
        sa.Column('service_day', sa.Date(), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('queue_number', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='waiting'),
        sa.Column('counter_number', sa.Integer(), nullable=True),
        sa.Column('served_by', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('skipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['request_id'], ['document_requests.id'], name='fk_queue_tickets_request_id_document_requests'),
        sa.PrimaryKeyConstraint('id', name='pk_queue_tickets'),
        sa.UniqueConstraint('service_day', 'sequence', name='uq_queue_tickets_day_sequence'),
        sa.UniqueConstraint('active_request_id', name='uq_queue_tickets_active_request'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('queue_tickets', schema=None) as batch_op:
        batch_op.create_index('ix_queue_tickets_request_id', ['request_id'], unique=False)
        batch_op.create_index('ix_queue_tickets_service_day', ['service_day'], unique=False)
        batch_op.create_index('ix_queue_tickets_queue_number', ['queue_number'], unique=False)
        batch_op.create_index('ix_queue_tickets_status', ['status'], unique=False)
        batch_op.create_index('ix_queue_tickets_status_created', ['status', 'created_at'], unique=False)
        batch_op.create_index('ix_queue_tickets_counter_status', ['counter_number', 'status'], unique=False)

    # ==========================================================================
    # 5. SEQUENCES
    # ==========================================================================
    op.create_table('sequence_counters',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sequence_type', sa.String(length=32), nullable=False),
        sa.Column('scope_key', sa.String(length=32), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_sequence_counters'),
        sa.UniqueConstraint('sequence_type', 'scope_key', name='uq_sequence_counters_type_scope'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sequence_counters', schema=None) as batch_op:
        batch_op.create_index('ix_sequence_counters_sequence_type', ['sequence_type'], unique=False)

    # ==========================================================================
    # 6. STATISTICS SNAPSHOTS
    # ==========================================================================
    op.create_table('statistics_snapshots',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('dimension', sa.String(length=64), nullable=False),
        sa.Column('as_of', sa.Date(), nullable=False),
        sa.Column('counts', sa.JSON(), nullable=False),
        sa.Column('last_updated', sa.DateTime(timezone=True), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id', name='pk_statistics_snapshots'),
        sa.UniqueConstraint('dimension', name='uq_statistics_snapshots_dimension'),
        sqlite_autoincrement=True
    )

    # ==========================================================================
    # 7. AUDIT EVENTS
    # ==========================================================================
    op.create_table('audit_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=32), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('actor', sa.String(length=128), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_audit_events'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('audit_events', schema=None) as batch_op:
        batch_op.create_index('ix_audit_events_action', ['action'], unique=False)
        batch_op.create_index('ix_audit_events_occurred_at', ['occurred_at'], unique=False)
        batch_op.create_index('ix_audit_events_entity', ['entity_type', 'entity_id'], unique=False)


def downgrade():
    # Drop tables in reverse order of creation (respect foreign keys)
    op.drop_table('audit_events')
    op.drop_table('statistics_snapshots')
    op.drop_table('sequence_counters')
    op.drop_table('queue_tickets')
    op.drop_table('document_request_items')
    op.drop_table('document_requests')
    op.drop_table('service_types')
    op.drop_table('persons')
