"""Messages table, feed indexes, and change notifications.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""

from alembic import op


# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.execute("""
        CREATE TABLE messages (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            type TEXT NOT NULL CHECK (type IN ('info', 'warn', 'error', 'debug')),
            source TEXT NOT NULL,
            text TEXT NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)

    # Feed order plus keyset paging on (created_at, id)
    op.execute("CREATE INDEX idx_messages_created_at_id ON messages(created_at DESC, id DESC);")
    op.execute("CREATE INDEX idx_messages_type ON messages(type);")
    op.execute("CREATE INDEX idx_messages_source ON messages(source);")

    # Observers LISTEN on message_changes; payload is {op, id}, the row is re-read
    op.execute("""
        CREATE FUNCTION notify_message_change() RETURNS trigger AS $$
        BEGIN
            IF TG_OP = 'DELETE' THEN
                PERFORM pg_notify('message_changes', json_build_object('op', 'removed', 'id', OLD.id)::text);
                RETURN OLD;
            END IF;
            PERFORM pg_notify(
                'message_changes',
                json_build_object(
                    'op', CASE WHEN TG_OP = 'INSERT' THEN 'added' ELSE 'changed' END,
                    'id', NEW.id
                )::text
            );
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TRIGGER messages_notify
        AFTER INSERT OR UPDATE OR DELETE ON messages
        FOR EACH ROW EXECUTE FUNCTION notify_message_change();
    """)


def downgrade():
    op.execute("DROP TRIGGER IF EXISTS messages_notify ON messages;")
    op.execute("DROP FUNCTION IF EXISTS notify_message_change();")
    op.execute("DROP TABLE IF EXISTS messages CASCADE;")
