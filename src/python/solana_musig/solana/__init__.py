"""Common constants used in the 'solana_musig.solana' package."""

LAMPORTS_PER_SOL: int = 1_000_000_000
"""Number of lamports (the smallest unit of account) per SOL."""

SYSTEM_PROGRAM_ID: str = '11111111111111111111111111111111'
"""Address of the System program, which executes SOL transfers. Its encoding is 32 zero bytes."""

MEMO_PROGRAM_ID: str = 'MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr'
"""Address of the SPL Memo program (v2)."""

SYSTEM_TRANSFER_INSTRUCTION_INDEX: int = 2
"""Index of the System program's `Transfer` instruction."""
