"""External reference (fingerprint) used as the import idempotency key."""

from typing import Optional

MAX_REFERENCE_LENGTH = 120


def build_fingerprint(
    channel: str,
    date: str,
    order_id: Optional[str],
    description: str,
    net_amount: float,
) -> str:
    """
    Build the deterministic external reference for a transaction.

    Format: ``{channel}_{date}_{order_id}_{description}_{net:.2f}`` truncated
    to 120 characters. Identical inputs always give identical output; very
    long descriptions can collide after truncation.

    Args:
        channel: Channel key, e.g. "mercado_livre".
        date: ISO transaction date.
        order_id: Marketplace order id, or None.
        description: Transaction description.
        net_amount: Net amount as stored (absolute value).

    Returns:
        External reference string of at most 120 characters.
    """
    raw = "_".join(
        [
            str(channel),
            str(date),
            str(order_id or ""),
            str(description),
            f"{float(net_amount):.2f}",
        ]
    )
    return raw[:MAX_REFERENCE_LENGTH]
