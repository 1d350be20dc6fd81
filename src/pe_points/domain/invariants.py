"""Balance invariants. Pure functions returning violation strings."""

from src.pe_points.domain.models import PointsBalance


def check_balance(bal: PointsBalance, last_balance_after: int | None) -> list[str]:
    violations: list[str] = []
    if bal.balance < 0:
        violations.append(f"user={bal.user_id}: negative balance {bal.balance}")
    if bal.lifetime_earned < 0 or bal.lifetime_spent < 0:
        violations.append(
            f"user={bal.user_id}: negative lifetime counter "
            f"earned={bal.lifetime_earned} spent={bal.lifetime_spent}"
        )
    if bal.balance != bal.lifetime_earned - bal.lifetime_spent:
        violations.append(
            f"user={bal.user_id}: balance {bal.balance} != "
            f"earned({bal.lifetime_earned}) - spent({bal.lifetime_spent})"
        )
    expected_last = last_balance_after if last_balance_after is not None else 0
    if bal.balance != expected_last:
        violations.append(
            f"user={bal.user_id}: balance {bal.balance} != "
            f"last ledger balance_after {expected_last}"
        )
    return violations
