# src/stakevault/runtime/domain_dispatch.py

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from stakevault.runtime.admin_gate import require_admin
from stakevault.runtime.apply.accounts import apply_accounts
from stakevault.runtime.apply.admin import apply_admin
from stakevault.runtime.apply.staking import apply_staking
from stakevault.runtime.apply.token import apply_token
from stakevault.runtime.errors import ApplyError
from stakevault.runtime.state_invariants import ensure_state
from stakevault.runtime.tx_admission_types import TxEnvelope
from stakevault.runtime.vault_store import require_config
from stakevault.tx.canon import TxIndex, load_tx_index

Json = Dict[str, Any]
ApplyFn = Callable[..., Optional[Json]]


def _tx_type(env: Any) -> str:
    if isinstance(env, dict):
        return str(env.get("tx_type", "") or "").strip().upper()
    return str(getattr(env, "tx_type", "") or "").strip().upper()


_APPLIERS: tuple[ApplyFn, ...] = (
    apply_accounts,
    apply_token,
    apply_admin,
    apply_staking,
)


def apply_tx(state: Json, env: Any, *, now: int, tx_index: Optional[TxIndex] = None) -> Json:
    """Dispatch a TxEnvelope to the first domain applier that claims it.

    `now` is the trusted clock reading (unix seconds) for this apply. Tx types
    the canon marks `gate: admin` are checked against the vault admin here,
    ahead of the domain applier and its payload validation.
    """

    ensure_state(state)

    # Tests and tools pass raw dict envelopes. Normalize to TxEnvelope so
    # domain appliers can rely on attribute access.
    env_norm: Any = env
    if isinstance(env, dict):
        env_norm = TxEnvelope.from_json(env)

    t = _tx_type(env_norm)
    if not t:
        raise ApplyError("invalid_tx", "missing_tx_type", {"tx_type": t})

    idx = tx_index if tx_index is not None else load_tx_index()
    if idx.is_admin_gated(t):
        require_admin(require_config(state), env_norm.signer)

    state["time"] = int(now)

    for fn in _APPLIERS:
        try:
            out = fn(state, env_norm, now=int(now))
        except ApplyError:
            raise
        except Exception as e:
            code = getattr(e, "code", None)
            reason = getattr(e, "reason", None)
            details = getattr(e, "details", None)

            if code is not None or reason is not None:
                raise ApplyError(
                    str(code or "domain_error"),
                    str(reason or type(e).__name__),
                    details if details is not None else {"tx_type": t, "domain": fn.__name__},
                ) from e

            raise ApplyError(
                "domain_error",
                type(e).__name__,
                {"tx_type": t, "domain": fn.__name__, "error": str(e)},
            ) from e

        if out is not None:
            return out

    raise ApplyError("tx_unimplemented", "tx_type_not_implemented", {"tx_type": t})


__all__ = ["ApplyError", "apply_tx"]
