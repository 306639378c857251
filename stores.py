"""Per-user resource stores.

Every query here is filtered by the owner id handed in by the caller, which
comes from the verified session identity, never from the request body.
"""

import re
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from errors import PersistenceError, ValidationError
from models import Todo, Transaction, db

# Thousands separators accepted in amounts: "100.000.000", "1,250", "2 500".
_SEPARATORS = re.compile(r"[.,\s_]")
_DIGITS = re.compile(r"^-?[0-9]+$")

DEFAULT_STATUS = 'pending'
STATUS_MAX_LENGTH = 20

# Range of the BigInteger amount column.
_AMOUNT_MIN = -(2 ** 63)
_AMOUNT_MAX = 2 ** 63 - 1


def parse_amount(value):
    """Parse a nominal amount into an int, stripping thousands separators."""
    amount = _to_int(value)
    if not _AMOUNT_MIN <= amount <= _AMOUNT_MAX:
        raise ValidationError('Amount is too large.')
    return amount


def _to_int(value):
    if value is None or isinstance(value, bool):
        raise ValidationError('Amount is required.')
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError('Amount must be a whole number.')
        return int(value)
    if not isinstance(value, str):
        raise ValidationError('Amount must be a number.')
    raw = _SEPARATORS.sub('', value)
    if not raw:
        raise ValidationError('Amount is required.')
    if not _DIGITS.match(raw):
        raise ValidationError('Amount must be a number.')
    return int(raw)


def parse_date(value):
    """ISO date or datetime; missing means now. Naive values are taken as UTC."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return datetime.now(timezone.utc)
    if not isinstance(value, str):
        raise ValidationError('Invalid date format.')
    try:
        raw = value.strip()
        # fromisoformat only learned the Z suffix in 3.11
        if raw[-1:] in ('Z', 'z'):
            raw = raw[:-1] + '+00:00'
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        raise ValidationError('Invalid date format.')
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _month_bounds(year, month):
    if month:
        start = datetime(year, month, 1, tzinfo=timezone.utc)
        end = datetime(year + (month == 12), month % 12 + 1, 1, tzinfo=timezone.utc)
    else:
        start = datetime(year, 1, 1, tzinfo=timezone.utc)
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    return start, end


class _OwnedStore:
    model = None

    def __init__(self, session=None):
        self.session = session if session is not None else db.session

    def _owned(self, owner_id):
        return self.session.query(self.model).filter(self.model.user_id == int(owner_id))

    def _save(self, row):
        self.session.add(row)
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise PersistenceError() from exc
        return row


class TodoStore(_OwnedStore):
    model = Todo

    def list(self, owner_id):
        return self._owned(owner_id).order_by(Todo.created_at, Todo.id).all()

    def create(self, owner_id, fields):
        text = (fields or {}).get('text')
        if not isinstance(text, str) or not text.strip():
            raise ValidationError('Todo text is required.')
        return self._save(Todo(user_id=int(owner_id), text=text.strip(), completed=False))


class TransactionStore(_OwnedStore):
    model = Transaction

    def list(self, owner_id, year=None, month=None, status=None):
        q = self._owned(owner_id)
        if month and not year:
            raise ValidationError('Month filter needs a year.')
        if month and not 1 <= month <= 12:
            raise ValidationError('Month must be between 1 and 12.')
        if year and not 1 <= year <= 9998:
            raise ValidationError('Invalid year.')
        if year:
            start, end = _month_bounds(year, month)
            q = q.filter(Transaction.date >= start, Transaction.date < end)
        if status:
            q = q.filter(Transaction.status == status)
        return q.order_by(Transaction.date.desc(), Transaction.id.desc()).all()

    def create(self, owner_id, fields):
        fields = fields or {}
        amount = parse_amount(fields.get('amount'))
        date = parse_date(fields.get('date'))
        status = fields.get('status') or DEFAULT_STATUS
        if not isinstance(status, str):
            raise ValidationError('Status must be text.')
        status = status.strip() or DEFAULT_STATUS
        if len(status) > STATUS_MAX_LENGTH:
            raise ValidationError(f'Status must be at most {STATUS_MAX_LENGTH} characters.')
        description = fields.get('description')
        if description is not None and not isinstance(description, str):
            raise ValidationError('Description must be text.')
        tx = Transaction(
            user_id=int(owner_id),
            amount=amount,
            date=date,
            status=status,
            description=description or None,
        )
        return self._save(tx)
