# src/stakevault/runtime/domain_apply.py
# ---------------------------------------------------------------------------
# Public, stable import path for applying tx envelopes.
# ---------------------------------------------------------------------------

from __future__ import annotations

import copy
from typing import Any, Dict, Optional

from stakevault.runtime.domain_dispatch import ApplyError, apply_tx
from stakevault.runtime.tx_admission_types import TxEnvelope
from stakevault.tx.canon import TxIndex

Json = Dict[str, Any]


def _consume_nonce_if_possible(state: Json, env: TxEnvelope) -> None:
    """Consume nonce as a deliberate side effect of a failed apply.

    A rejected stake or unstake still burns the signer's nonce, so the same
    signed envelope can never be replayed after the holder fixes the cause.
    Only the account nonce is touched.
    """
    signer = str(env.signer or "").strip()
    if not signer:
        return

    acct = state.get("accounts", {}).get(signer)
    if not isinstance(acct, dict):
        return

    acct["nonce"] = int(env.nonce)


def apply_tx_atomic(
    state: Json,
    env: Any,
    *,
    now: int,
    consume_nonce_on_fail: bool = True,
    tx_index: Optional[TxIndex] = None,
) -> Optional[Json]:
    """Apply a tx with fail-atomic semantics.

    On success:
      - state is updated as if apply_tx() ran directly, and the signer's
        nonce advances to env.nonce.

    On ApplyError:
      - state remains unchanged, except (optionally) nonce consumption.
    """

    env_norm: Any = env
    if isinstance(env, dict):
        env_norm = TxEnvelope.from_json(env)

    snapshot = copy.deepcopy(state)

    try:
        meta = apply_tx(snapshot, env_norm, now=now, tx_index=tx_index)
    except ApplyError:
        if consume_nonce_on_fail:
            _consume_nonce_if_possible(state, env_norm)
        raise

    _consume_nonce_if_possible(snapshot, env_norm)

    # Commit by replacing contents in-place so callers holding references
    # to `state` see the updated view.
    state.clear()
    state.update(snapshot)
    return meta


__all__ = ["ApplyError", "apply_tx", "apply_tx_atomic", "Json"]
