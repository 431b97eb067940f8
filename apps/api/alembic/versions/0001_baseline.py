"""Baseline migration - full ARIS schema

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-19

Creates tenancy, email, CRM, sales document, Metakocka, pipeline,
notification, subscription and job tables.
"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# Tables with an updated_at column maintained by trigger
UPDATED_AT_TABLES = (
    'organizations',
    'users',
    'email_accounts',
    'email_queue',
    'contacts',
    'products',
    'suppliers',
    'sales_documents',
    'metakocka_credentials',
    'metakocka_product_mappings',
    'metakocka_contact_mappings',
    'metakocka_sales_document_mappings',
    'metakocka_auto_sync_settings',
    'sales_pipelines',
    'opportunities',
    'notifications',
    'subscription_plans',
    'organization_subscriptions',
    'subscription_invoices',
)


def _create_mapping_table(
    name: str, short: str, crm_column: str, crm_table: str, extra_columns: str
) -> None:
    op.execute(f'''
        CREATE TABLE {name} (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            {crm_column} UUID NOT NULL REFERENCES {crm_table}(id) ON DELETE CASCADE,
            metakocka_id VARCHAR(100),
            {extra_columns}
            sync_status VARCHAR(20) NOT NULL DEFAULT 'pending',
            sync_error TEXT,
            sync_direction VARCHAR(30) NOT NULL DEFAULT 'crm_to_metakocka',
            last_synced_at TIMESTAMPTZ,
            metadata JSONB NOT NULL DEFAULT '{{}}'::jsonb,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_mk_{short}_crm UNIQUE(organization_id, {crm_column}),
            CONSTRAINT uq_mk_{short}_mk UNIQUE(organization_id, metakocka_id)
        )
    ''')


def upgrade() -> None:
    """Create the full schema."""

    op.execute('CREATE EXTENSION IF NOT EXISTS pgcrypto')  # For gen_random_uuid()

    # ==========================================================================
    # Tenancy
    # ==========================================================================
    op.execute('''
        CREATE TABLE organizations (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name VARCHAR(255) NOT NULL,
            slug VARCHAR(100) UNIQUE NOT NULL,
            subscription_tier VARCHAR(50) NOT NULL DEFAULT 'free',
            subscription_status VARCHAR(50) NOT NULL DEFAULT 'active',
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('''
        CREATE TABLE users (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            email VARCHAR(320) UNIQUE NOT NULL,
            display_name VARCHAR(255) NOT NULL,
            token_version INTEGER NOT NULL DEFAULT 1,
            is_active BOOLEAN NOT NULL DEFAULT true,
            last_login_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('''
        CREATE TABLE memberships (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id UUID UNIQUE NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            role VARCHAR(50) NOT NULL,
            is_owner BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_memberships_org_id ON memberships(organization_id)')

    # ==========================================================================
    # CRM records
    # ==========================================================================
    op.execute('''
        CREATE TABLE contacts (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            firstname VARCHAR(255),
            lastname VARCHAR(255),
            full_name VARCHAR(511),
            email VARCHAR(320),
            phone VARCHAR(50),
            company VARCHAR(255),
            position VARCHAR(255),
            notes TEXT,
            status VARCHAR(30) NOT NULL DEFAULT 'active',
            created_by UUID REFERENCES users(id) ON DELETE SET NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_contacts_org_email ON contacts(organization_id, email)')

    op.execute('''
        CREATE TABLE products (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            name VARCHAR(255) NOT NULL,
            sku VARCHAR(100),
            description TEXT,
            category VARCHAR(100),
            price NUMERIC(12, 2),
            quantity_on_hand DOUBLE PRECISION NOT NULL DEFAULT 0,
            quantity_reserved DOUBLE PRECISION NOT NULL DEFAULT 0,
            quantity_available DOUBLE PRECISION NOT NULL DEFAULT 0,
            inventory_synced_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')

    op.execute('''
        CREATE TABLE suppliers (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            name VARCHAR(255) NOT NULL,
            email VARCHAR(320) NOT NULL,
            phone VARCHAR(50),
            website VARCHAR(500),
            notes TEXT,
            reliability_score DOUBLE PRECISION,
            created_by UUID REFERENCES users(id) ON DELETE SET NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_suppliers_org_email UNIQUE(organization_id, email)
        )
    ''')

    # ==========================================================================
    # Email accounts, index, content and queue
    # ==========================================================================
    op.execute('''
        CREATE TABLE email_accounts (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            email VARCHAR(320) NOT NULL,
            display_name VARCHAR(255),
            provider_type VARCHAR(20) NOT NULL,
            imap_host VARCHAR(255),
            imap_port INTEGER,
            imap_security VARCHAR(20),
            smtp_host VARCHAR(255),
            smtp_port INTEGER,
            smtp_security VARCHAR(20),
            username VARCHAR(320),
            password_encrypted TEXT,
            access_token_encrypted TEXT,
            refresh_token_encrypted TEXT,
            token_expires_at TIMESTAMPTZ,
            is_active BOOLEAN NOT NULL DEFAULT true,
            real_time_sync_active BOOLEAN NOT NULL DEFAULT false,
            sync_config JSONB,
            polling_interval_minutes DOUBLE PRECISION,
            enable_webhooks BOOLEAN NOT NULL DEFAULT false,
            last_sync_at TIMESTAMPTZ,
            next_sync_at TIMESTAMPTZ,
            last_full_sync_at TIMESTAMPTZ,
            last_sync_error TEXT,
            setup_completed BOOLEAN NOT NULL DEFAULT false,
            setup_completed_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_email_accounts_org_email UNIQUE(organization_id, email)
        )
    ''')
    op.execute(
        'CREATE INDEX idx_email_accounts_due ON email_accounts(real_time_sync_active, next_sync_at)'
    )

    op.execute('''
        CREATE TABLE email_sync_states (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            email_account_id UUID NOT NULL REFERENCES email_accounts(id) ON DELETE CASCADE,
            folder VARCHAR(255) NOT NULL,
            cursor TEXT,
            last_synced_at TIMESTAMPTZ,
            CONSTRAINT uq_email_sync_state_folder UNIQUE(email_account_id, folder)
        )
    ''')

    op.execute('''
        CREATE TABLE email_index (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            email_account_id UUID NOT NULL REFERENCES email_accounts(id) ON DELETE CASCADE,
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            message_id VARCHAR(512) NOT NULL,
            thread_id VARCHAR(512),
            subject TEXT,
            preview_text VARCHAR(200),
            sender_email VARCHAR(320),
            recipient_email TEXT,
            email_type VARCHAR(20) NOT NULL,
            folder_name VARCHAR(255),
            sent_at TIMESTAMPTZ,
            received_at TIMESTAMPTZ,
            has_attachments BOOLEAN NOT NULL DEFAULT false,
            is_read BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_email_index_account_message UNIQUE(email_account_id, message_id)
        )
    ''')
    op.execute(
        'CREATE INDEX idx_email_index_org_received ON email_index(organization_id, received_at)'
    )

    op.execute('''
        CREATE TABLE email_content_cache (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            email_index_id UUID UNIQUE NOT NULL REFERENCES email_index(id) ON DELETE CASCADE,
            message_id VARCHAR(512) NOT NULL,
            html_content TEXT,
            plain_content TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')

    op.execute('''
        CREATE TABLE email_queue (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            email_id UUID NOT NULL REFERENCES email_index(id) ON DELETE CASCADE,
            contact_id UUID REFERENCES contacts(id) ON DELETE SET NULL,
            user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            status VARCHAR(30) NOT NULL DEFAULT 'pending',
            priority VARCHAR(20) NOT NULL DEFAULT 'medium',
            processing_attempts INTEGER NOT NULL DEFAULT 0,
            max_attempts INTEGER NOT NULL DEFAULT 3,
            last_processed_at TIMESTAMPTZ,
            error_message TEXT,
            requires_manual_review BOOLEAN NOT NULL DEFAULT false,
            metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_email_queue_org_email UNIQUE(organization_id, email_id)
        )
    ''')
    op.execute('CREATE INDEX idx_email_queue_org_status ON email_queue(organization_id, status)')

    # ==========================================================================
    # Sales documents
    # ==========================================================================
    op.execute('''
        CREATE TABLE sales_documents (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            document_type VARCHAR(30) NOT NULL,
            number VARCHAR(100),
            date DATE,
            due_date DATE,
            customer_id UUID REFERENCES contacts(id) ON DELETE SET NULL,
            customer_name VARCHAR(255),
            customer_address TEXT,
            customer_email VARCHAR(320),
            total_amount NUMERIC(12, 2) NOT NULL DEFAULT 0,
            tax_amount NUMERIC(12, 2) NOT NULL DEFAULT 0,
            currency VARCHAR(3) NOT NULL DEFAULT 'EUR',
            status VARCHAR(30) NOT NULL DEFAULT 'draft',
            notes TEXT,
            metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
            created_by UUID REFERENCES users(id) ON DELETE SET NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('''
        CREATE TABLE sales_document_items (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            document_id UUID NOT NULL REFERENCES sales_documents(id) ON DELETE CASCADE,
            product_id UUID REFERENCES products(id) ON DELETE SET NULL,
            position INTEGER NOT NULL DEFAULT 0,
            description TEXT NOT NULL,
            quantity DOUBLE PRECISION NOT NULL DEFAULT 1,
            unit_price NUMERIC(12, 2) NOT NULL,
            tax_rate DOUBLE PRECISION NOT NULL DEFAULT 0,
            discount DOUBLE PRECISION NOT NULL DEFAULT 0,
            total_price NUMERIC(12, 2) NOT NULL
        )
    ''')

    # ==========================================================================
    # Metakocka
    # ==========================================================================
    op.execute('''
        CREATE TABLE metakocka_credentials (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID UNIQUE NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            company_id VARCHAR(50) NOT NULL,
            secret_key_encrypted TEXT NOT NULL,
            api_endpoint VARCHAR(500),
            is_active BOOLEAN NOT NULL DEFAULT true,
            last_verified_at TIMESTAMPTZ,
            created_by UUID REFERENCES users(id) ON DELETE SET NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    _create_mapping_table(
        'metakocka_product_mappings', 'product', 'product_id', 'products',
        'metakocka_code VARCHAR(100),',
    )
    _create_mapping_table(
        'metakocka_contact_mappings', 'contact', 'contact_id', 'contacts',
        'metakocka_code VARCHAR(100),',
    )
    _create_mapping_table(
        'metakocka_sales_document_mappings', 'document', 'document_id', 'sales_documents',
        'metakocka_document_type VARCHAR(50), metakocka_document_number VARCHAR(100),',
    )

    op.execute('''
        CREATE TABLE metakocka_integration_logs (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            level VARCHAR(20) NOT NULL,
            category VARCHAR(20) NOT NULL,
            message TEXT NOT NULL,
            context JSONB NOT NULL DEFAULT '{}'::jsonb,
            resolved BOOLEAN NOT NULL DEFAULT false,
            resolution_notes TEXT,
            resolved_at TIMESTAMPTZ,
            resolved_by UUID REFERENCES users(id) ON DELETE SET NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute(
        'CREATE INDEX idx_mk_logs_org_created ON metakocka_integration_logs(organization_id, created_at)'
    )
    op.execute(
        'CREATE INDEX idx_mk_logs_org_resolved ON metakocka_integration_logs(organization_id, resolved)'
    )

    op.execute('''
        CREATE TABLE metakocka_auto_sync_settings (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID UNIQUE NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            enabled BOOLEAN NOT NULL DEFAULT false,
            products_interval_minutes INTEGER NOT NULL DEFAULT 30,
            invoices_interval_minutes INTEGER NOT NULL DEFAULT 15,
            contacts_interval_minutes INTEGER NOT NULL DEFAULT 60,
            inventory_interval_minutes INTEGER NOT NULL DEFAULT 10,
            directions JSONB NOT NULL DEFAULT '{}'::jsonb,
            last_run_at JSONB NOT NULL DEFAULT '{}'::jsonb,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')

    # ==========================================================================
    # Sales pipelines
    # ==========================================================================
    op.execute('''
        CREATE TABLE sales_pipelines (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            name VARCHAR(100) NOT NULL,
            description TEXT,
            color VARCHAR(7) NOT NULL DEFAULT '#3B82F6',
            is_active BOOLEAN NOT NULL DEFAULT true,
            sort_order INTEGER NOT NULL DEFAULT 0,
            created_by UUID REFERENCES users(id) ON DELETE SET NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('''
        CREATE TABLE pipeline_stages (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            pipeline_id UUID NOT NULL REFERENCES sales_pipelines(id) ON DELETE CASCADE,
            name VARCHAR(100) NOT NULL,
            color VARCHAR(7) NOT NULL DEFAULT '#6B7280',
            probability INTEGER NOT NULL DEFAULT 0,
            sort_order INTEGER NOT NULL,
            is_closed_won BOOLEAN NOT NULL DEFAULT false,
            is_closed_lost BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('''
        CREATE TABLE opportunities (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            pipeline_id UUID NOT NULL REFERENCES sales_pipelines(id) ON DELETE CASCADE,
            stage_id UUID NOT NULL REFERENCES pipeline_stages(id) ON DELETE RESTRICT,
            title VARCHAR(255) NOT NULL,
            description TEXT,
            value NUMERIC(14, 2) NOT NULL DEFAULT 0,
            currency VARCHAR(3) NOT NULL DEFAULT 'USD',
            probability DOUBLE PRECISION NOT NULL DEFAULT 0,
            status VARCHAR(10) NOT NULL DEFAULT 'open',
            priority VARCHAR(10) NOT NULL DEFAULT 'medium',
            contact_id UUID REFERENCES contacts(id) ON DELETE SET NULL,
            assigned_to UUID REFERENCES users(id) ON DELETE SET NULL,
            expected_close_date DATE,
            actual_close_date DATE,
            tags JSONB NOT NULL DEFAULT '[]'::jsonb,
            created_by UUID REFERENCES users(id) ON DELETE SET NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute(
        'CREATE INDEX idx_opportunities_pipeline_stage ON opportunities(pipeline_id, stage_id)'
    )
    op.execute('CREATE INDEX idx_opportunities_org_status ON opportunities(organization_id, status)')
    op.execute('''
        CREATE TABLE opportunity_activities (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            opportunity_id UUID NOT NULL REFERENCES opportunities(id) ON DELETE CASCADE,
            activity_type VARCHAR(30) NOT NULL,
            description TEXT,
            metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
            created_by UUID REFERENCES users(id) ON DELETE SET NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')

    # ==========================================================================
    # Notifications
    # ==========================================================================
    op.execute('''
        CREATE TABLE notifications (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            type VARCHAR(50) NOT NULL,
            title VARCHAR(255) NOT NULL,
            message TEXT NOT NULL,
            read BOOLEAN NOT NULL DEFAULT false,
            action_url TEXT,
            metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
            dedupe_key VARCHAR(255),
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_notif_user_unread ON notifications(user_id, read, created_at)')
    op.execute('CREATE INDEX idx_notif_dedupe ON notifications(dedupe_key, created_at)')

    # ==========================================================================
    # Subscriptions
    # ==========================================================================
    op.execute('''
        CREATE TABLE subscription_plans (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name VARCHAR(100) NOT NULL,
            description TEXT,
            price NUMERIC(10, 2) NOT NULL,
            billing_interval VARCHAR(20) NOT NULL,
            features JSONB NOT NULL DEFAULT '{}'::jsonb,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('''
        CREATE TABLE organization_subscriptions (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            subscription_plan_id UUID NOT NULL REFERENCES subscription_plans(id),
            status VARCHAR(50) NOT NULL,
            current_period_start TIMESTAMPTZ NOT NULL,
            current_period_end TIMESTAMPTZ NOT NULL,
            cancel_at_period_end BOOLEAN NOT NULL DEFAULT false,
            payment_method_id VARCHAR(255),
            subscription_provider VARCHAR(50),
            provider_subscription_id VARCHAR(255),
            metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute(
        'CREATE INDEX ix_organization_subscriptions_organization_id '
        'ON organization_subscriptions(organization_id)'
    )
    op.execute('''
        CREATE TABLE subscription_invoices (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            subscription_id UUID NOT NULL REFERENCES organization_subscriptions(id) ON DELETE CASCADE,
            amount NUMERIC(10, 2) NOT NULL,
            status VARCHAR(50) NOT NULL,
            due_date TIMESTAMPTZ,
            paid_at TIMESTAMPTZ,
            invoice_url VARCHAR(500),
            invoice_pdf VARCHAR(500),
            provider_invoice_id VARCHAR(255),
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute(
        'CREATE INDEX ix_subscription_invoices_organization_id '
        'ON subscription_invoices(organization_id)'
    )

    # ==========================================================================
    # Jobs
    # ==========================================================================
    op.execute('''
        CREATE TABLE jobs (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            job_type VARCHAR(50) NOT NULL,
            payload JSONB NOT NULL DEFAULT '{}'::jsonb,
            run_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            status VARCHAR(20) NOT NULL DEFAULT 'pending',
            attempts INTEGER NOT NULL DEFAULT 0,
            max_attempts INTEGER NOT NULL DEFAULT 3,
            last_error TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            completed_at TIMESTAMPTZ,
            idempotency_key VARCHAR(255),
            CONSTRAINT uq_job_idempotency UNIQUE(organization_id, idempotency_key)
        )
    ''')
    op.execute('CREATE INDEX idx_jobs_pending ON jobs(status, run_at)')
    op.execute('CREATE INDEX idx_jobs_org ON jobs(organization_id, created_at)')

    # ==========================================================================
    # Trigger: Auto-update updated_at on row modification
    # ==========================================================================
    op.execute('''
        CREATE OR REPLACE FUNCTION update_updated_at_column()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = now();
            RETURN NEW;
        END;
        $$ language 'plpgsql'
    ''')
    for table in UPDATED_AT_TABLES:
        op.execute(f'''
            CREATE TRIGGER update_{table}_updated_at
                BEFORE UPDATE ON {table}
                FOR EACH ROW
                EXECUTE FUNCTION update_updated_at_column()
        ''')


def downgrade() -> None:
    """Drop the full schema."""

    for table in UPDATED_AT_TABLES:
        op.execute(f'DROP TRIGGER IF EXISTS update_{table}_updated_at ON {table}')
    op.execute('DROP FUNCTION IF EXISTS update_updated_at_column()')

    # Reverse dependency order
    for table in (
        'jobs',
        'subscription_invoices',
        'organization_subscriptions',
        'subscription_plans',
        'notifications',
        'opportunity_activities',
        'opportunities',
        'pipeline_stages',
        'sales_pipelines',
        'metakocka_auto_sync_settings',
        'metakocka_integration_logs',
        'metakocka_sales_document_mappings',
        'metakocka_contact_mappings',
        'metakocka_product_mappings',
        'metakocka_credentials',
        'sales_document_items',
        'sales_documents',
        'email_queue',
        'email_content_cache',
        'email_index',
        'email_sync_states',
        'email_accounts',
        'suppliers',
        'products',
        'contacts',
        'memberships',
        'users',
        'organizations',
    ):
        op.execute(f'DROP TABLE IF EXISTS {table}')
