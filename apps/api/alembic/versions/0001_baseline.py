"""Baseline migration - users and donations

Revision ID: 0001_baseline
Revises: 
Create Date: 2026-10-19

Creates the users table (identity + role capability profile) and the
donations table every dashboard watches.
"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create users and donations tables."""

    # ==========================================================================
    # Enable required extensions
    # ==========================================================================
    op.execute('CREATE EXTENSION IF NOT EXISTS pgcrypto')  # For gen_random_uuid()

    # ==========================================================================
    # Users
    # ==========================================================================
    op.execute('''
        CREATE TABLE users (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            email VARCHAR(255) UNIQUE NOT NULL,
            password_hash VARCHAR(255) NOT NULL,
            name VARCHAR(255) NOT NULL,
            phone VARCHAR(50),
            role VARCHAR(20) NOT NULL,
            address TEXT NOT NULL DEFAULT '',
            latitude DOUBLE PRECISION,
            longitude DOUBLE PRECISION,
            acceptance_type VARCHAR(20),
            organisation_type VARCHAR(30),
            token_version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT ck_users_role CHECK (role IN ('donor', 'recipient', 'volunteer')),
            CONSTRAINT ck_users_acceptance_type CHECK (
                acceptance_type IS NULL OR acceptance_type IN ('edible', 'non-edible', 'both')
            )
        )
    ''')
    op.execute('CREATE INDEX idx_users_role ON users(role)')

    # ==========================================================================
    # Donations
    # ==========================================================================
    op.execute('''
        CREATE TABLE donations (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            donor_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            food_type VARCHAR(255) NOT NULL,
            quantity NUMERIC(12, 3) NOT NULL,
            quantity_unit VARCHAR(20) NOT NULL,
            acceptance VARCHAR(20) NOT NULL,
            latitude DOUBLE PRECISION NOT NULL,
            longitude DOUBLE PRECISION NOT NULL,
            expiry TIMESTAMPTZ NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'posted',
            organisation_id UUID REFERENCES users(id) ON DELETE SET NULL,
            volunteer_id UUID REFERENCES users(id) ON DELETE SET NULL,
            volunteer_needed BOOLEAN NOT NULL DEFAULT FALSE,
            version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            delivered_at TIMESTAMPTZ,
            CONSTRAINT ck_donations_quantity_positive CHECK (quantity > 0),
            CONSTRAINT ck_donations_status CHECK (status IN (
                'posted', 'diverted', 'claimed', 'accepted',
                'picked', 'delivered', 'confirmed', 'expired'
            )),
            CONSTRAINT ck_donations_acceptance CHECK (acceptance IN ('edible', 'non-edible')),
            CONSTRAINT ck_donations_unit CHECK (
                quantity_unit IN ('kg', 'liters', 'packs', 'plates', 'items')
            )
        )
    ''')
    op.execute('CREATE INDEX idx_donations_status ON donations(status)')
    op.execute('CREATE INDEX idx_donations_donor ON donations(donor_id)')
    op.execute('CREATE INDEX idx_donations_organisation ON donations(organisation_id, status)')
    op.execute('CREATE INDEX idx_donations_volunteer ON donations(volunteer_id, status)')


def downgrade() -> None:
    """Drop all baseline tables."""
    op.execute('DROP TABLE IF EXISTS donations CASCADE')
    op.execute('DROP TABLE IF EXISTS users CASCADE')
