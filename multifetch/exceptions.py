"""Public exceptions for multifetch."""


class MultifetchError(Exception):
    """Base exception for all multifetch errors."""


class MultiplexerError(MultifetchError):
    """The multiplexer cannot make progress (fatal readiness-wait or perform failure)."""


class MultifetchConfigError(MultifetchError):
    """Configuration error (out-of-range environment or constructor values)."""
