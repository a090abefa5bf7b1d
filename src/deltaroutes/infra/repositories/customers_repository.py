"""Customers repository - customers are deduplicated by email."""

from psycopg2.extensions import cursor as PgCursor

from deltaroutes.domain.models import Customer


def normalize_email(email: str) -> str:
    return email.strip().lower()


def upsert_customer(
    cur: PgCursor,
    *,
    email: str,
    name: str | None = None,
    phone: str | None = None,
) -> Customer:
    """Insert or reuse the customer for an email.

    Name and phone are only overwritten when a new value is supplied.
    """
    cur.execute(
        """
        INSERT INTO customers (email, name, phone)
        VALUES (%s, %s, %s)
        ON CONFLICT (email) DO UPDATE
        SET name = COALESCE(EXCLUDED.name, customers.name),
            phone = COALESCE(EXCLUDED.phone, customers.phone)
        RETURNING id, email, name, phone
        """,
        (normalize_email(email), name, phone),
    )
    row = cur.fetchone()
    return Customer(id=str(row[0]), email=row[1], name=row[2], phone=row[3])


def get_customer(cur: PgCursor, customer_id: str) -> Customer | None:
    cur.execute(
        "SELECT id, email, name, phone FROM customers WHERE id = %s",
        (customer_id,),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return Customer(id=str(row[0]), email=row[1], name=row[2], phone=row[3])


def update_contact(
    cur: PgCursor,
    *,
    customer_id: str,
    name: str,
    phone: str | None,
) -> None:
    cur.execute(
        "UPDATE customers SET name = %s, phone = %s WHERE id = %s",
        (name, phone, customer_id),
    )
