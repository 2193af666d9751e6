"""Raw (unpadded) RSA transforms used to sign and unwrap MTPZ messages."""

from typing import Optional

from cryptography.hazmat.primitives.asymmetric import rsa

from ..errors import CryptographicError


class RsaPublicKey:
    """RSA public key built from a modulus and a public exponent."""

    def __init__(self, modulus: int, public_exponent: int):
        try:
            self._numbers = rsa.RSAPublicNumbers(public_exponent, modulus)
            self._key = self._numbers.public_key()
        except (ValueError, TypeError) as e:
            raise CryptographicError(f"Could not instantiate RSA public key: {e}") from e

    @property
    def modulus(self) -> int:
        return self._numbers.n

    @property
    def public_exponent(self) -> int:
        return self._numbers.e

    @property
    def key_size(self) -> int:
        """Modulus size in bits."""
        return self._key.key_size


class RsaPrivateKey:
    """
    RSA private key built from modulus, private and public exponent.

    The prime factors are recovered so cryptography can check that the
    three numbers belong together; an inconsistent key is rejected here
    rather than producing garbage during the handshake.
    """

    def __init__(self, modulus: int, private_exponent: int, public_exponent: int):
        try:
            p, q = rsa.rsa_recover_prime_factors(modulus, public_exponent, private_exponent)
            public_numbers = rsa.RSAPublicNumbers(public_exponent, modulus)
            self._numbers = rsa.RSAPrivateNumbers(
                p=p,
                q=q,
                d=private_exponent,
                dmp1=rsa.rsa_crt_dmp1(private_exponent, p),
                dmq1=rsa.rsa_crt_dmq1(private_exponent, q),
                iqmp=rsa.rsa_crt_iqmp(p, q),
                public_numbers=public_numbers,
            )
            self._key = self._numbers.private_key()
        except (ValueError, TypeError) as e:
            raise CryptographicError(f"Could not instantiate RSA private key: {e}") from e

    @property
    def modulus(self) -> int:
        return self._numbers.public_numbers.n

    @property
    def private_exponent(self) -> int:
        return self._numbers.d

    @property
    def public_key(self) -> RsaPublicKey:
        numbers = self._numbers.public_numbers
        return RsaPublicKey(numbers.n, numbers.e)


def _transform(data: bytes, exponent: int, modulus: int, out_len: int) -> bytes:
    value = int.from_bytes(data, 'big')
    if value >= modulus:
        raise CryptographicError("RSA input is not smaller than the modulus")

    result = pow(value, exponent, modulus)
    if result == 0:
        raise CryptographicError("RSA transform produced no output")

    # Leading zero bytes are part of the fixed-width block
    size = (result.bit_length() + 7) // 8
    if size > out_len:
        raise CryptographicError(f"RSA output needs {size} bytes, only {out_len} available")
    return result.to_bytes(out_len, 'big')


class RsaEngine:
    """
    Raw RSA operations for the handshake.

    decrypt() and sign() are the same private-key transform with no
    padding scheme; encrypt() is the public-key transform.
    """

    def __init__(self, private_key: Optional[RsaPrivateKey] = None,
                 public_key: Optional[RsaPublicKey] = None):
        if private_key is None and public_key is None:
            raise ValueError("RsaEngine needs a private or a public key")
        self._private_key = private_key
        self._public_key = public_key or private_key.public_key

    @classmethod
    def from_key_material(cls, key_material) -> 'RsaEngine':
        """
        Build an engine from provisioned key material.

        Args:
            key_material: KeyMaterial with hex-string RSA values

        Returns:
            RsaEngine holding both keys

        Raises:
            CryptographicError: If the numbers do not form a valid key
        """
        try:
            modulus = int(key_material.modulus, 16)
            private_exponent = int(key_material.private_key, 16)
            public_exponent = int(key_material.public_exponent, 16)
        except ValueError as e:
            raise CryptographicError(f"Could not instantiate RSA object: {e}") from e
        return cls(private_key=RsaPrivateKey(modulus, private_exponent, public_exponent))

    @classmethod
    def from_public_numbers(cls, modulus: int, public_exponent: int) -> 'RsaEngine':
        return cls(public_key=RsaPublicKey(modulus, public_exponent))

    @property
    def public_key(self) -> RsaPublicKey:
        return self._public_key

    def private_transform(self, data: bytes, out_len: int) -> bytes:
        """
        Raise data to the private exponent modulo the modulus.

        Args:
            data: Big-endian unsigned input
            out_len: Fixed output width in bytes

        Returns:
            Result left-padded with zero bytes to out_len

        Raises:
            CryptographicError: If no private key is held, the input is out of
                                range, or the result is empty or too wide
        """
        if self._private_key is None:
            raise CryptographicError("RSA private key not available")
        return _transform(data, self._private_key.private_exponent,
                          self._private_key.modulus, out_len)

    def public_transform(self, data: bytes, out_len: int) -> bytes:
        """Raise data to the public exponent modulo the modulus."""
        return _transform(data, self._public_key.public_exponent,
                          self._public_key.modulus, out_len)

    def decrypt(self, data: bytes, out_len: int) -> bytes:
        return self.private_transform(data, out_len)

    def sign(self, data: bytes, out_len: int) -> bytes:
        return self.private_transform(data, out_len)

    def encrypt(self, data: bytes, out_len: int) -> bytes:
        return self.public_transform(data, out_len)
