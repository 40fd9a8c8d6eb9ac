"""Initial schema: users, books, genres, import jobs

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

"""
import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('username', sa.String(50), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_username', 'users', ['username'], unique=True)

    op.create_table(
        'genres',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(50), nullable=False),
        sa.Column('name_normalized', sa.String(50), nullable=False),
        sa.Column('is_system_genre', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_genres_name_normalized', 'genres', ['name_normalized'], unique=True)

    op.create_table(
        'books',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('author', sa.String(255), nullable=False),
        sa.Column('title_normalized', sa.String(255), nullable=False),
        sa.Column('author_normalized', sa.String(255), nullable=False),
        sa.Column('published_date', sa.String(50), nullable=False),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('edition', sa.String(100), nullable=True),
        sa.Column('isbn', sa.String(20), nullable=True),
        sa.Column('open_library_id', sa.String(50), nullable=True),
        sa.Column('cover_url', sa.String(500), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('page_count', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_books_user_id', 'books', ['user_id'])
    op.create_index('ix_books_title', 'books', ['title'])
    op.create_index('ix_books_author', 'books', ['author'])
    op.create_index('ix_books_title_normalized', 'books', ['title_normalized'])
    op.create_index('ix_books_author_normalized', 'books', ['author_normalized'])
    op.create_index('ix_books_isbn', 'books', ['isbn'])

    op.create_table(
        'book_genres',
        sa.Column(
            'book_id',
            sa.String(36),
            sa.ForeignKey('books.id', ondelete='CASCADE'),
            primary_key=True,
        ),
        sa.Column(
            'genre_id',
            sa.Integer(),
            sa.ForeignKey('genres.id', ondelete='CASCADE'),
            primary_key=True,
        ),
    )

    op.create_table(
        'import_jobs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('file_name', sa.String(255), nullable=False),
        sa.Column('status', sa.String(30), nullable=False),
        sa.Column('total_rows', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('valid_rows', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_rows', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('processed_rows', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('imported_rows', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('skipped_rows', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_summary_json', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_import_jobs_user_id', 'import_jobs', ['user_id'])
    op.create_index('ix_import_jobs_status', 'import_jobs', ['status'])
    op.create_index('ix_import_jobs_created_at', 'import_jobs', ['created_at'])


def downgrade() -> None:
    op.drop_table('import_jobs')
    op.drop_table('book_genres')
    op.drop_table('books')
    op.drop_table('genres')
    op.drop_table('users')
