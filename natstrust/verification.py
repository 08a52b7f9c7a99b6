"""Offline verification of an operator -> account -> user token chain.

Checks signatures and who signed what; it does not evaluate permissions or
limits, which is the server's job.
"""

from typing import Optional

from .claims import (
    AccountClaims,
    OperatorClaims,
    decode_account_claims,
    decode_claims,
    decode_operator_claims,
    decode_user_claims,
)
from .types import ErrorCode, NatsTrustError, VerificationResult


def _failure(code: str, message: str) -> VerificationResult:
    return VerificationResult(valid=False, error_code=code, error_message=message)


def _operator_signed(account: AccountClaims, operator: OperatorClaims) -> bool:
    return account.issuer == operator.subject or account.issuer in operator.signing_keys


def verify_token(token: str, expected_issuer: Optional[str] = None) -> VerificationResult:
    """Verify one token against the issuer key it names.

    When expected_issuer is given the token must also have been issued by
    that key. The subject is reported under the field for its claim type.
    """
    try:
        claims = decode_claims(token)
    except NatsTrustError as e:
        return _failure(ErrorCode.SIGNATURE_INVALID, f"JWT rejected: {e}")

    if expected_issuer and claims.issuer != expected_issuer:
        return _failure(
            ErrorCode.ISSUER_MISMATCH,
            f"{claims.claim_type.value} {claims.subject} was issued by {claims.issuer}, expected {expected_issuer}",
        )

    result = VerificationResult(valid=True)
    setattr(result, claims.claim_type.value, claims.subject)
    return result


def verify_chain(
    operator_token: str,
    account_token: str,
    user_token: Optional[str] = None,
) -> VerificationResult:
    """Verify that each token in the chain was issued by its parent.

    Never raises for a bad chain; the reason is in the result.
    """
    # Step 1: Decode and verify signatures
    try:
        operator = decode_operator_claims(operator_token)
    except NatsTrustError as e:
        return _failure(ErrorCode.SIGNATURE_INVALID, f"operator JWT rejected: {e}")
    try:
        account = decode_account_claims(account_token)
    except NatsTrustError as e:
        return _failure(ErrorCode.SIGNATURE_INVALID, f"account JWT rejected: {e}")

    # Step 2: Operator is the root and issues itself
    if operator.issuer != operator.subject:
        return _failure(ErrorCode.ISSUER_MISMATCH, "operator JWT is not self-signed")

    # Step 3: Account issued by the operator or one of its signing keys
    if not _operator_signed(account, operator):
        return _failure(
            ErrorCode.ISSUER_MISMATCH,
            f"account {account.subject} was issued by {account.issuer}, not by operator {operator.subject}",
        )

    result = VerificationResult(valid=True, operator=operator.subject, account=account.subject)
    if operator.strict_signing_key_usage and account.issuer == operator.subject:
        result.warnings.append("operator requires signing keys but the account was signed by the operator key")

    if user_token is None:
        return result

    # Step 4: User issued by the account or one of its signing keys
    try:
        user = decode_user_claims(user_token)
    except NatsTrustError as e:
        return _failure(ErrorCode.SIGNATURE_INVALID, f"user JWT rejected: {e}")

    if user.issuer == account.subject:
        if user.issuer_account and user.issuer_account != account.subject:
            return _failure(
                ErrorCode.ISSUER_MISMATCH,
                f"user issuer_account {user.issuer_account} does not match account {account.subject}",
            )
    elif user.issuer in account.signing_keys:
        if user.issuer_account != account.subject:
            return _failure(
                ErrorCode.ISSUER_MISMATCH,
                "user signed with an account signing key must name the account in issuer_account",
            )
    else:
        return _failure(
            ErrorCode.ISSUER_MISMATCH,
            f"user {user.subject} was issued by {user.issuer}, which is not account {account.subject} "
            "or one of its signing keys",
        )

    result.user = user.subject
    return result
