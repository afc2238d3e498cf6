from .logger import logger


class BaseCustomException(Exception):
    """Base of every error that fails the verification of one contract."""

    prefix = "Verification failed"

    def __init__(self, reason: str):
        self.reason = reason
        self.message = f"{self.prefix}: {reason}"
        super().__init__(self.message)


class InputError(BaseCustomException):
    """Bad configuration or data the verification can't be run with. Never retried."""


class TransportError(BaseCustomException):
    """A remote service failed or doesn't have what it must have."""


class VerificationInputError(InputError):
    prefix = "Invalid verification input"


class CalldataError(InputError):
    prefix = "Failed to get constructor arguments"


class EncoderError(InputError):
    prefix = "Failed to encode constructor arguments"


class NodeError(TransportError):
    prefix = "Failed to communicate with node"


class ExplorerError(TransportError):
    prefix = "Failed to communicate with Blockchain explorer"


class CompileError(BaseCustomException):
    prefix = "Failed to compile contract"


class HardhatError(BaseCustomException):
    prefix = "Failed to start Hardhat"


class ReplayError(BaseCustomException):
    prefix = "Failed to replay deployment"


class ExceptionHandler:
    raise_exception = True

    @staticmethod
    def initialize(raise_exception: bool) -> None:
        ExceptionHandler.raise_exception = raise_exception

    @staticmethod
    def raise_exception_or_log(
        custom_exception: BaseCustomException, contract_address: str | None = None
    ) -> None:
        if ExceptionHandler.raise_exception:
            raise custom_exception
        if contract_address is None:
            logger.error(custom_exception.message)
        else:
            logger.error(custom_exception.message, contract_address)
