"""
All the exceptions raised when dealing with Miniscript.
"""


class MiniscriptMalformed(ValueError):
    def __init__(self, message: str):
        self.message: str = message


class MiniscriptNodeCreationError(ValueError):
    def __init__(self, message: str):
        self.message: str = message
