"""
Command line interface for Solana transfers signed by a single key, or jointly by N parties via aggregate signing.

An aggregate transfer runs as follows: every party runs ``agg-send-step-one`` and sends its first message to all other
parties; every party then runs ``agg-send-step-two`` with all first messages & its own secret state, and sends its
partial signature to whichever party broadcasts; that party runs ``aggregate-signatures-and-broadcast``. All parties
must pass exactly the same keys & transaction details (amount, recipient, memo & recent block hash).
"""
from __future__ import annotations

import functools
import logging

from decimal import Decimal
from typing import Callable, Optional, Sequence

import base58
import click

from solana_musig.config import (
    CLIConfig, DEFAULT_NETWORK, KEY_ORDER_ENV_VAR, NETWORK_ENV_VAR, RPC_URL_ENV_VAR
)
from solana_musig.ecc.ecc_exceptions import InvalidECCPointException, InvalidECCPublicKeyException
from solana_musig.ecc.signatures.aggregate_schnorr import (
    AggregatedKey, Aggregator, KeyAggregator, KeyOrdering, NonceCommitment, NonceStage, PartialSignature,
    SecretNonceState, SigningStage
)
from solana_musig.ecc.signatures.schnorr import SchnorrContext, SchnorrKeyPair, SchnorrSignature
from solana_musig.exceptions import AggregateSigningException, MalformedMessageException, WrongNetworkException
from solana_musig.solana import LAMPORTS_PER_SOL
from solana_musig.solana.network import Network
from solana_musig.solana.rpc import SolanaRPCError
from solana_musig.solana.transaction import (
    TransferParameters, build_transaction, decode_address, decode_blockhash, sol_to_lamports
)

logger = logging.getLogger(__name__)

HANDLED_EXCEPTIONS: tuple[type[Exception], ...] = (
    AggregateSigningException, SolanaRPCError, InvalidECCPointException, InvalidECCPublicKeyException, ValueError
)


class NetworkParamType(click.ParamType):
    name = 'network'

    def convert(self, value, param, ctx) -> Network:
        if isinstance(value, Network):
            return value
        try:
            return Network.from_string(value)
        except WrongNetworkException as wne:
            self.fail(wne.msg, param, ctx)


class WireMessageParamType(click.ParamType):
    """Parses a base58-encoded protocol message, via the message class' ``from_string_encoding``."""

    def __init__(self, name: str, decoder: Callable):
        self.name = name
        self.decoder = decoder

    def convert(self, value, param, ctx):
        if not isinstance(value, str):
            return value
        try:
            return self.decoder(value)
        except MalformedMessageException as mme:
            self.fail(mme.msg, param, ctx)


NETWORK = NetworkParamType()
FIRST_MESSAGE = WireMessageParamType('first-message', NonceCommitment.from_string_encoding)
SECRET_STATE = WireMessageParamType('secret-state', SecretNonceState.from_string_encoding)
PARTIAL_SIGNATURE = WireMessageParamType('partial-signature', PartialSignature.from_string_encoding)

pass_config = click.make_pass_decorator(CLIConfig)


def handle_errors(func):
    """Reports protocol, encoding & RPC failures as CLI errors, with a non-zero exit status."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except HANDLED_EXCEPTIONS as e:
            logger.debug("Command failed", exc_info=True)
            raise click.ClickException(f"{type(e).__name__}: {e}") from e

    return wrapper


def network_option(func):
    return click.option(
        '--net', 'network', type=NETWORK, default=DEFAULT_NETWORK.value, envvar=NETWORK_ENV_VAR, show_default=True,
        help='Choose the desired network: mainnet/testnet/devnet/local'
    )(func)


def transfer_options(func):
    """Options for the transaction details, which all parties must pass identically."""
    for option in reversed([
        click.option('--amount', required=True, help='The amount of SOL to send.'),
        click.option('--to', 'recipient', required=True, help='Address of the recipient.'),
        click.option('--memo', default=None, help='Add a memo to the transaction.'),
        click.option(
            '--recent-block-hash', required=True,
            help='A recent block hash (see `recent-block-hash`); all parties must pass the same hash.'
        ),
        click.option(
            '--keys', multiple=True, required=True, help='Address of a party to the aggregate key (repeatable).'
        ),
    ]):
        func = option(func)
    return func


def _transfer_parameters(
        amount: str,
        recipient: str,
        memo: Optional[str],
        recent_block_hash: str
) -> TransferParameters:
    return TransferParameters(
        recipient=decode_address(recipient),
        lamports=sol_to_lamports(amount),
        recent_blockhash=decode_blockhash(recent_block_hash),
        memo=memo
    )


def _aggregate_keys(config: CLIConfig, keys: Sequence[str]) -> AggregatedKey:
    return KeyAggregator(config.aggregate_context()).aggregate([decode_address(key) for key in keys])


def _format_sol(lamports: int) -> str:
    return f"{Decimal(lamports) / LAMPORTS_PER_SOL:f}"


@click.group(context_settings={'help_option_names': ['-h', '--help']})
@click.option(
    '--key-order', type=click.Choice([ordering.value for ordering in KeyOrdering]), default=KeyOrdering.SORTED.value,
    envvar=KEY_ORDER_ENV_VAR, show_default=True, help='Canonical ordering of the keys for key aggregation.'
)
@click.option('--rpc-url', default=None, envvar=RPC_URL_ENV_VAR, help="Override the network's RPC endpoint.")
@click.option('--verbose', '-v', count=True, help='Increase verbosity (-v for INFO, -vv for DEBUG)')
@click.version_option(package_name='solana-musig')
@click.pass_context
def cli(ctx: click.Context, key_order: str, rpc_url: Optional[str], verbose: int):
    """N-of-N aggregate (MuSig-style) Ed25519 signing for Solana transfers."""
    config = CLIConfig(key_ordering=KeyOrdering(key_order), rpc_url=rpc_url, verbose=verbose)
    config.setup_logging()
    ctx.obj = config


@cli.command()
def generate():
    """Generate a pair of keys."""
    key_pair: SchnorrKeyPair = SchnorrKeyPair.generate(SchnorrContext())

    click.echo(f"Secret key: {key_pair.to_base58()}")
    click.echo(f"Public key: {key_pair.public_key.to_base58()}")


@cli.command()
@click.argument('address')
@network_option
@pass_config
@handle_errors
def balance(config: CLIConfig, address: str, network: Network):
    """Check the balance of an address."""
    decode_address(address)
    with config.rpc_client(network) as client:
        lamports: int = client.get_balance(address)

    click.echo(f"The balance of {address} is: {_format_sol(lamports)} SOL ({lamports} lamports)")


@cli.command()
@click.option('--to', 'recipient', required=True, help='Address of the recipient.')
@click.option('--amount', required=True, help='The amount of SOL to request.')
@network_option
@pass_config
@handle_errors
def airdrop(config: CLIConfig, recipient: str, amount: str, network: Network):
    """Request an airdrop from a faucet."""
    decode_address(recipient)
    with config.rpc_client(network) as client:
        transaction_id: str = client.request_airdrop(recipient, sol_to_lamports(amount))

    click.echo(f"Airdrop transaction ID: {transaction_id}")


@cli.command('send-single')
@click.option('--keypair', required=True, help='A base58 Solana keypair (secret key).')
@click.option('--amount', required=True, help='The amount of SOL to send.')
@click.option('--to', 'recipient', required=True, help='Address of the recipient.')
@click.option('--memo', default=None, help='Add a memo to the transaction.')
@network_option
@pass_config
@handle_errors
def send_single(config: CLIConfig, keypair: str, amount: str, recipient: str, memo: Optional[str], network: Network):
    """Send a transaction using a single private key."""
    key_pair: SchnorrKeyPair = SchnorrKeyPair.from_base58(SchnorrContext(), keypair)
    lamports: int = sol_to_lamports(amount)

    with config.rpc_client(network) as client:
        parameters = TransferParameters(
            recipient=decode_address(recipient),
            lamports=lamports,
            recent_blockhash=client.get_recent_blockhash(),
            memo=memo
        )
        message: bytes = parameters.compile_message(key_pair.public_key.export_key())
        signature: SchnorrSignature = key_pair.sign(message)
        transaction_id: str = client.send_transaction(build_transaction(message, signature.to_bytes()))

    click.echo(f"Transaction ID: {transaction_id}")


@cli.command('recent-block-hash')
@network_option
@pass_config
@handle_errors
def recent_block_hash(config: CLIConfig, network: Network):
    """Print the hash of a recent block, to pass to the `agg-send` steps."""
    with config.rpc_client(network) as client:
        blockhash: bytes = client.get_recent_blockhash()

    click.echo(f"Recent block hash: {base58.b58encode(blockhash).decode('ascii')}")


@cli.command('aggregate-keys')
@click.argument('keys', nargs=-1, required=True)
@pass_config
@handle_errors
def aggregate_keys(config: CLIConfig, keys: tuple[str, ...]):
    """Aggregate a list of addresses into a single address that they can all sign on together."""
    aggregated_key: AggregatedKey = _aggregate_keys(config, keys)

    click.echo(f"The Aggregated Public Key: {aggregated_key.address}")


@cli.command('agg-send-step-one')
@click.option('--keypair', required=True, help='A base58 Solana keypair (secret key) of the signing party.')
@pass_config
@handle_errors
def agg_send_step_one(config: CLIConfig, keypair: str):
    """Start aggregate signing: generate this party's first message & secret state."""
    key_pair: SchnorrKeyPair = SchnorrKeyPair.from_base58(SchnorrContext(), keypair)
    first_message, secret_state = NonceStage(config.aggregate_context()).begin_round1(key_pair)

    click.echo(f"Message 1: {first_message.encode_as_string()} (send this to all other parties)")
    click.echo(f"Secret state: {secret_state.encode_as_string()} (keep this secret, and pass it to step two)")
    secret_state.destroy()


@cli.command('agg-send-step-two')
@click.option('--keypair', required=True, help='A base58 Solana keypair (secret key) of the signing party.')
@transfer_options
@click.option(
    '--first-messages', multiple=True, required=True, type=FIRST_MESSAGE,
    help="A party's first message from step one (repeatable, one per party)."
)
@click.option('--secret-state', required=True, type=SECRET_STATE, help='The secret state from step one.')
@pass_config
@handle_errors
def agg_send_step_two(
        config: CLIConfig,
        keypair: str,
        amount: str,
        recipient: str,
        memo: Optional[str],
        recent_block_hash: str,
        keys: tuple[str, ...],
        first_messages: tuple[NonceCommitment, ...],
        secret_state: SecretNonceState
):
    """Step two of aggregate signing: compute this party's partial signature."""
    key_pair: SchnorrKeyPair = SchnorrKeyPair.from_base58(SchnorrContext(), keypair)
    parameters: TransferParameters = _transfer_parameters(amount, recipient, memo, recent_block_hash)
    aggregated_key: AggregatedKey = _aggregate_keys(config, keys)

    message: bytes = parameters.compile_message(aggregated_key.encoded)
    partial_signature: PartialSignature = SigningStage(config.aggregate_context()).sign_round2(
        key_pair, None, secret_state, first_messages, aggregated_key, message
    )

    click.echo(f"Partial signature: {partial_signature.encode_as_string()}")


@cli.command('aggregate-signatures-and-broadcast')
@click.option(
    '--signatures', multiple=True, required=True, type=PARTIAL_SIGNATURE,
    help="A party's partial signature from step two (repeatable, one per party)."
)
@transfer_options
@network_option
@pass_config
@handle_errors
def aggregate_signatures_and_broadcast(
        config: CLIConfig,
        signatures: tuple[PartialSignature, ...],
        amount: str,
        recipient: str,
        memo: Optional[str],
        recent_block_hash: str,
        keys: tuple[str, ...],
        network: Network
):
    """Aggregate all partial signatures into a full signature, and send the transaction to Solana."""
    parameters: TransferParameters = _transfer_parameters(amount, recipient, memo, recent_block_hash)
    aggregated_key: AggregatedKey = _aggregate_keys(config, keys)

    message: bytes = parameters.compile_message(aggregated_key.encoded)
    signature: SchnorrSignature = Aggregator(config.aggregate_context()).finalize(
        None, signatures, aggregated_key, message
    )

    with config.rpc_client(network) as client:
        transaction_id: str = client.send_transaction(build_transaction(message, signature.to_bytes()))

    click.echo(f"Transaction ID: {transaction_id}")


if __name__ == '__main__':
    cli()
