# python imports:
from typing import Union

import packaging.version # pip install packaging

__version__ = packaging.version.parse ( '0.1.0' )

BYTES = Union[bytes,bytearray,memoryview]
bytes_types = ( bytes, bytearray, memoryview )

def b2s ( b: BYTES, encoding: str = 'us-ascii', errors: str = 'strict' ) -> str:
	return bytes ( b ).decode ( encoding, errors )

def s2b ( s: str, encoding: str = 'us-ascii', errors: str = 'strict' ) -> bytes:
	return s.encode ( encoding, errors )

def strip_eol ( line: BYTES ) -> bytes:
	line = bytes ( line )
	if line.endswith ( b'\r\n' ):
		return line[:-2]
	if line.endswith ( b'\n' ):
		return line[:-1]
	return line
