"""
All the exceptions raised when encoding or decoding a descriptor.
"""


class CodecError(ValueError):
    def __init__(self, message: str):
        super().__init__(message)
        self.message: str = message


class UnknownTag(CodecError):
    """The byte does not correspond to any registered kind."""


class UnexpectedTag(UnknownTag):
    """A registered tag appeared where it cannot occur."""


class MalformedVarint(CodecError):
    """A varint was not encoded in its minimal form."""


class TruncatedVarint(CodecError):
    pass


class VarintOverflow(CodecError):
    """A varint does not fit in 32 bits."""


class TruncatedTemplate(CodecError):
    pass


class TrailingTemplate(CodecError):
    pass


class MalformedTemplate(CodecError):
    """A structural value of the template is out of range."""


class TruncatedPayload(CodecError):
    pass


class TrailingPayload(CodecError):
    pass


class InvalidKeyMaterial(CodecError):
    """Key bytes from the payload are not a valid point or scalar."""


class RecursionLimitExceeded(CodecError):
    pass
