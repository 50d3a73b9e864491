# MIT License
# Copyright (c) 2025 Hashborn

"""
Multisig Executor

Turns an intended privileged call into a multisig request, gets it approved
and executed. The account owns the nonce: it is read right before each
request is built and never cached between calls.
"""

import logging
import threading
from typing import Any, Callable, List, Optional, Sequence
from pydantic import ValidationError

from ..protocol.abi import encode_call
from ..protocol.crypto.addresses import address_to_int, to_checksum_address
from ..protocol.types.common import SigningMode, AuthorizationError, EncodingError
from ..protocol.types.request import AuthorizationRequest, CoSignature, ExecutionOutcome
from ..observability.metrics import record_privileged_call
from .interfaces import MultisigAccount

logger = logging.getLogger(__name__)

CONFIRM_ANSWERS = {"y", "yes"}
ABORT_ANSWERS = {"n", "no", "abort"}


def join_signatures(signatures: Sequence[CoSignature]) -> bytes:
    """Concatenate co-signatures in ascending signer-address order, as the account expects."""
    ordered = sorted(signatures, key=lambda s: address_to_int(s.address))
    return b"".join(s.sig_bytes for s in ordered)


class MultisigExecutor:
    """
    Submits privileged calls through a multisig account.

    One executor per account: submit() holds a lock from the nonce read to
    the end of execution so two calls never sign over the same nonce.
    """

    def __init__(
        self,
        account: MultisigAccount,
        signer_key: Optional[bytes] = None,
        mode: SigningMode = SigningMode.AUTO,
        prompt: Callable[[str], str] = input,
        output: Callable[[str], None] = print
    ):
        """
        Args:
            account: Multisig account the calls are executed from
            signer_key: Owner private key (required for AUTO mode)
            mode: How signatures are obtained
            prompt: Reads an operator answer (defaults to input)
            output: Writes operator-facing text (defaults to print)
        """
        if mode is SigningMode.AUTO and signer_key is None:
            raise AuthorizationError("Auto-sign mode requires a signing key")

        self.account = account
        self.signer_key = signer_key
        self.mode = mode
        self.prompt = prompt
        self.output = output
        self._lock = threading.Lock()

    def submit(self, target: str, method: str, args: Sequence[Any]) -> ExecutionOutcome:
        """
        Encode, authorize and execute one call.

        Args:
            target: Contract address the call is made on
            method: Canonical signature, e.g. "registerModule(address,bytes32)"
            args: Call arguments

        Returns:
            ExecutionOutcome (submitted=False when completed out of band)

        Raises:
            EncodingError: If the call cannot be encoded
            AuthorizationError: If the account rejects the call or the operator aborts
        """
        payload = encode_call(method, args)
        try:
            target = to_checksum_address(target)
        except ValueError as e:
            raise EncodingError(f"target: {e}")

        with self._lock:
            nonce = self.account.current_nonce()
            request = AuthorizationRequest(
                account=self.account.address,
                target=target,
                value=0,
                payload="0x" + payload.hex(),
                nonce=nonce,
                method=method
            )
            logger.info(
                f"Privileged call {method} on {request.target}: "
                f"data={request.payload} nonce={nonce} digest={request.digest_hex}"
            )

            if self.mode is SigningMode.AUTO:
                request.sign(self.signer_key)
                return self._execute(request)
            if self.mode is SigningMode.MANUAL:
                return self._await_operator(request)
            return self._collect_and_execute(request)

    def _execute(self, request: AuthorizationRequest) -> ExecutionOutcome:
        try:
            tx_hash = self.account.execute(
                request.target,
                request.value,
                request.payload_bytes,
                request.signature_bytes
            )
        except Exception as e:
            record_privileged_call(request.method, "rejected")
            logger.error(f"Multisig rejected {request.method}: {e}\n{request.describe()}")
            raise AuthorizationError(f"Multisig rejected {request.method}: {e}", request=request) from e

        record_privileged_call(request.method, "submitted")
        logger.info(f"Executed {request.method} (nonce {request.nonce}): tx {tx_hash}")
        return ExecutionOutcome(request=request, submitted=True, tx_hash=tx_hash)

    def _print_request(self, request: AuthorizationRequest):
        self.output("******* MultisigExecutor *******")
        self.output(request.describe())
        self.output(f"Required signatures: {self.account.threshold()}")
        self.output("********************************")

    def _await_operator(self, request: AuthorizationRequest) -> ExecutionOutcome:
        """Block until the operator confirms the request was signed and executed elsewhere."""
        self._print_request(request)
        while True:
            answer = self.prompt("Type 'yes' once the transaction is executed (or 'abort'): ")
            answer = answer.strip().lower()
            if answer in CONFIRM_ANSWERS:
                break
            if answer in ABORT_ANSWERS:
                record_privileged_call(request.method, "aborted")
                raise AuthorizationError(f"Operator aborted {request.method}", request=request)

        record_privileged_call(request.method, "manual")
        logger.info(f"Operator confirmed {request.method} (nonce {request.nonce})")
        return ExecutionOutcome(request=request, submitted=False)

    def _collect_and_execute(self, request: AuthorizationRequest) -> ExecutionOutcome:
        """Prompt for threshold co-signatures, check them, then execute once."""
        self._print_request(request)
        digest = request.hash()
        threshold = self.account.threshold()

        collected: List[CoSignature] = []
        for index in range(threshold):
            raw = self.prompt(f"Please provide signature {index + 1}/{threshold}: ")
            try:
                cosig = CoSignature.model_validate_json(raw)
            except ValidationError as e:
                raise AuthorizationError(f"Malformed signature {index + 1}: {e}", request=request)

            if not cosig.matches(digest):
                raise AuthorizationError(
                    f"Signature {index + 1} was not produced by {cosig.address}", request=request
                )
            if any(c.address == cosig.address for c in collected):
                raise AuthorizationError(f"Duplicate signature from {cosig.address}", request=request)
            collected.append(cosig)

        request.signatures = "0x" + join_signatures(collected).hex()
        return self._execute(request)
