"""
ABI codec for the parameters carried through the flash loan.
Layout: tuple(address tokenIn, address tokenOut, uint256 amountIn,
uint24 feeLeg1, uint24 feeLeg2, bool useAlternateVenue).
"""

from __future__ import annotations

from dataclasses import dataclass

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError

from chain.errors import InvalidParams
from chain.ledger import normalize_address

_PARAMS_TYPE = "(address,address,uint256,uint24,uint24,bool)"


@dataclass(frozen=True)
class ArbitrageParams:
    token_in: str
    token_out: str
    amount_in: int
    fee_leg1: int
    fee_leg2: int
    use_alternate_venue: bool = False


def encode_params(params: ArbitrageParams) -> bytes:
    if params.amount_in <= 0:
        raise ValueError(f"amount_in must be positive, got {params.amount_in}")
    value = (
        normalize_address(params.token_in),
        normalize_address(params.token_out),
        params.amount_in,
        params.fee_leg1,
        params.fee_leg2,
        params.use_alternate_venue,
    )
    try:
        return encode([_PARAMS_TYPE], [value])
    except (EncodingError, TypeError, ValueError) as e:
        raise ValueError(f"Cannot encode arbitrage params: {e}") from e


def decode_params(data: bytes) -> ArbitrageParams:
    """Decode params bytes. Raises InvalidParams on malformed input."""
    try:
        (value,) = decode([_PARAMS_TYPE], data)
    except (DecodingError, TypeError, ValueError) as e:
        raise InvalidParams(f"undecodable params: {e}") from e
    token_in, token_out, amount_in, fee_leg1, fee_leg2, use_alternate = value
    return ArbitrageParams(
        token_in=normalize_address(token_in),
        token_out=normalize_address(token_out),
        amount_in=int(amount_in),
        fee_leg1=int(fee_leg1),
        fee_leg2=int(fee_leg2),
        use_alternate_venue=bool(use_alternate),
    )
