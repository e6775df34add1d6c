from solders.pubkey import Pubkey

# Programs
TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
TOKEN_2022_PROGRAM_ID = Pubkey.from_string("TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb")

TOKEN_PROGRAMS = (TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID)

# Swap program custom error codes, logged as hex and reported as {"Custom": <decimal>}
SLIPPAGE_ERROR_CODE = 0x1788
INSUFFICIENT_FUNDS_CODE = 0x1771
INSUFFICIENT_RENT_CODE = 0x1
NO_ROUTE_ERROR_CODE = "COULD_NOT_FIND_ANY_ROUTE"
