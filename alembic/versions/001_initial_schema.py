"""Initial schema creation

Revision ID: 001
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

AUDIO_FEATURE_COLUMNS = (
    'danceability',
    'energy',
    'loudness',
    'speechiness',
    'acousticness',
    'instrumentalness',
    'liveness',
    'valence',
    'tempo',
)


def upgrade() -> None:
    """Create initial database schema."""
    # Create users table
    op.create_table('users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('access_token', sa.Text(), nullable=False),
        sa.Column('refresh_token', sa.Text(), nullable=False),
        sa.Column('expires_in', sa.Integer(), nullable=True),
        sa.Column('api_token', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id')
    )
    op.create_index('ix_users_user_id', 'users', ['user_id'])
    op.create_index('ix_users_api_token', 'users', ['api_token'])

    # Create artists and genres tables
    op.create_table('artists',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('artist_id', sa.String(64), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('artist_id')
    )
    op.create_index('ix_artists_artist_id', 'artists', ['artist_id'])

    op.create_table('genres',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('genre', sa.String(255), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('genre')
    )

    op.create_table('artist_genres',
        sa.Column('artist_id', sa.Integer(), nullable=False),
        sa.Column('genre_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['artist_id'], ['artists.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['genre_id'], ['genres.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('artist_id', 'genre_id')
    )

    # Create tracks table
    op.create_table('tracks',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('track_id', sa.String(64), nullable=False),
        sa.Column('name', sa.String(512), nullable=False),
        sa.Column('artist_id', sa.Integer(), nullable=False),
        sa.Column('genre_id', sa.Integer(), nullable=True),
        *[sa.Column(name, sa.Float(), nullable=True) for name in AUDIO_FEATURE_COLUMNS],
        sa.ForeignKeyConstraint(['artist_id'], ['artists.id'], ),
        sa.ForeignKeyConstraint(['genre_id'], ['genres.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('track_id')
    )
    op.create_index('ix_tracks_track_id', 'tracks', ['track_id'])

    # Create liked_tracks table
    op.create_table('liked_tracks',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('track_id', sa.Integer(), nullable=False),
        sa.Column('added_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['track_id'], ['tracks.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'track_id', name='uq_liked_tracks_user_track')
    )
    op.create_index('ix_liked_tracks_user_id', 'liked_tracks', ['user_id'])
    op.create_index('idx_liked_tracks_user_month', 'liked_tracks', ['user_id', 'year', 'month'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index('idx_liked_tracks_user_month', table_name='liked_tracks')
    op.drop_index('ix_liked_tracks_user_id', table_name='liked_tracks')
    op.drop_table('liked_tracks')
    op.drop_index('ix_tracks_track_id', table_name='tracks')
    op.drop_table('tracks')
    op.drop_table('artist_genres')
    op.drop_table('genres')
    op.drop_index('ix_artists_artist_id', table_name='artists')
    op.drop_table('artists')
    op.drop_index('ix_users_api_token', table_name='users')
    op.drop_index('ix_users_user_id', table_name='users')
    op.drop_table('users')
