class DescriptorParsingError(ValueError):
    """Error while reading an Output Script Descriptor from its string representation"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message: str = message
