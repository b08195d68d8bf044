from typing import NewType

Address = NewType('Address', str)
HexData = NewType('HexData', str)
UserOperationHash = NewType('UserOperationHash', str)
