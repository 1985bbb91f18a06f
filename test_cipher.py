"""
userpass - Cipher & Session Self-Tests

Run with: python test_cipher.py   (or: pytest)

Shows that:
- Sealed vault files decrypt only with the right passphrase
- Tampering with the header or ciphertext is detected
- The session tries the agent first, then prompts a bounded number of times
- The passphrase cache is per session and cleared on close
- The GnuPG backend builds the right command lines (subprocess mocked)
"""

import os
import subprocess
import tempfile
from unittest import mock

from userpass import crypto
from userpass.cipher import GpgCipher, VaultCipher
from userpass.errors import CipherError, DecryptionFailed, EncryptionFailed
from userpass.session import CredentialCache, Session

FAST_N = 2**10


class ScriptedCipher:
    """Accepts one passphrase; optionally lets the 'agent' succeed."""

    extension = "test"
    requires_secret = True

    def __init__(self, passphrase, agent_ok=False):
        self.passphrase = passphrase
        self.agent_ok = agent_ok
        self.calls = []

    def decrypt(self, path, secret=None, use_agent=True):
        self.calls.append((secret, use_agent))
        if secret is None and use_agent and self.agent_ok:
            return b"from-agent"
        if secret != self.passphrase:
            raise CipherError("bad passphrase")
        return b"plaintext"

    def encrypt(self, path, data, secret=None):
        with open(path, 'wb') as f:
            f.write(data)


class Prompter:
    def __init__(self, *answers):
        self.answers = list(answers)
        self.messages = []

    def __call__(self, message):
        self.messages.append(message)
        if not self.answers:
            raise AssertionError(f"Unexpected prompt: {message}")
        return self.answers.pop(0)


def test_seal_unseal():
    """Test the sealed file format."""
    print("Testing Seal/Unseal...")

    plaintext = b"100\tsite\talice\tp1\n"
    blob = crypto.seal("passphrase", plaintext, n=FAST_N)
    assert blob.startswith(crypto.MAGIC)
    assert plaintext not in blob
    assert crypto.unseal("passphrase", blob) == plaintext
    print("  [OK] Seal/unseal round trip works")

    assert crypto.seal("passphrase", plaintext, n=FAST_N) != blob, "Fresh salt/nonce each time"
    print("  [OK] Re-sealing gives different bytes")

    try:
        crypto.unseal("wrong", blob)
        assert False, "Should reject wrong passphrase"
    except CipherError:
        print("  [OK] Wrong passphrase rejected")

    tampered = bytearray(blob)
    tampered[-1] ^= 1
    try:
        crypto.unseal("passphrase", bytes(tampered))
        assert False, "Should detect ciphertext tampering"
    except CipherError:
        print("  [OK] Ciphertext tampering detected")

    # Header is bound as associated data
    header_edit = blob.replace(b'"aead":"aes256gcm"', b'"aead":"aes256gcx"')
    assert header_edit != blob
    try:
        crypto.unseal("passphrase", header_edit)
        assert False, "Should detect header tampering"
    except CipherError:
        print("  [OK] Header tampering detected")

    for junk in (b"", b"not a vault", crypto.MAGIC, blob[:20]):
        try:
            crypto.unseal("passphrase", junk)
            assert False, "Should reject junk input"
        except CipherError:
            pass
    print("  [OK] Junk and truncated files rejected")


def test_password_generation():
    """Test password generation."""
    print("Testing Password Generation...")

    pwd = crypto.generate_password(length=20, use_symbols=True)
    assert len(pwd) == 20, "Should generate requested length"
    assert "\t" not in pwd and "\n" not in pwd

    pwd_no_sym = crypto.generate_password(length=16, use_symbols=False)
    assert len(pwd_no_sym) == 16
    assert all(c.isalnum() for c in pwd_no_sym), "Should be alphanumeric only"

    try:
        crypto.generate_password(length=0)
        assert False, "Should reject zero length"
    except ValueError:
        pass
    print("  [OK] Password generation works")


def test_vault_cipher_files():
    """VaultCipher reads and writes files and needs a passphrase."""
    print("Testing VaultCipher...")

    with tempfile.TemporaryDirectory() as d:
        path = os.path.join(d, "userpass.alpha.vault")
        cipher = VaultCipher(scrypt_n=FAST_N)
        cipher.encrypt(path, b"data", "pw")
        assert cipher.decrypt(path, "pw", use_agent=False) == b"data"

        for call in (lambda: cipher.decrypt(path), lambda: cipher.encrypt(path, b"x")):
            try:
                call()
                assert False, "Should require a passphrase"
            except CipherError:
                pass
        try:
            cipher.decrypt(os.path.join(d, "missing"), "pw")
            assert False, "Should fail on missing file"
        except CipherError:
            pass
    print("  [OK] VaultCipher works")


def test_session_agent_first():
    """The first attempt goes to the agent without prompting."""
    print("Testing Session agent path...")

    cipher = ScriptedCipher("pw", agent_ok=True)
    prompt = Prompter()
    session = Session(cipher, prompt=prompt)
    assert session.read("any") == b"from-agent"
    assert cipher.calls == [(None, True)]
    assert prompt.messages == []
    print("  [OK] Agent success needs no prompt")


def test_session_retry_budget():
    """Prompts up to `attempts` times, then raises DecryptionFailed."""
    print("Testing Session retry budget...")

    cipher = ScriptedCipher("pw")
    prompt = Prompter("bad", "worse", "pw")
    session = Session(cipher, prompt=prompt, attempts=3)
    assert session.read("userpass.alpha.gpg") == b"plaintext"
    assert cipher.calls == [(None, True), ("bad", False), ("worse", False), ("pw", False)]
    assert session.cache.get() == "pw"
    print("  [OK] Third prompt succeeds and is cached")

    # A second file reuses the cached passphrase without prompting
    cipher.calls = []
    assert session.read("userpass.beta.gpg") == b"plaintext"
    assert cipher.calls == [("pw", False)]
    print("  [OK] Cached passphrase reused")

    cipher = ScriptedCipher("pw")
    prompt = Prompter("a", "b")
    session = Session(cipher, prompt=prompt, attempts=2)
    try:
        session.read("userpass.alpha.gpg")
        assert False, "Should raise DecryptionFailed"
    except DecryptionFailed as e:
        assert e.attempts == 2
        assert e.path == "userpass.alpha.gpg"
        assert isinstance(e.__cause__, CipherError)
    assert len(prompt.messages) == 2
    assert session.cache.get() is None
    print("  [OK] Budget exhausted raises DecryptionFailed")

    try:
        Session(cipher, prompt=prompt, attempts=0)
        assert False, "Should reject zero attempts"
    except ValueError:
        pass


def test_session_cache_lifecycle():
    """The cache belongs to the session and is cleared on close."""
    print("Testing Credential cache...")

    shared = CredentialCache()
    with Session(ScriptedCipher("pw"), prompt=Prompter("pw"), cache=shared) as session:
        session.read("x")
        assert shared.get() == "pw"
    assert shared.get() is None, "Closing the session clears the cache"

    one = Session(ScriptedCipher("pw"), prompt=Prompter("pw"))
    two = Session(ScriptedCipher("pw"), prompt=Prompter())
    one.read("x")
    assert two.cache.get() is None, "Sessions don't share passphrases"
    print("  [OK] Cache is session scoped")


def test_session_write_new_passphrase():
    """Writing without a known passphrase asks for one twice."""
    print("Testing Session write...")

    with tempfile.TemporaryDirectory() as d:
        path = os.path.join(d, "userpass.alpha.test")

        session = Session(ScriptedCipher("pw"), prompt=Prompter("pw", "typo"))
        try:
            session.write(path, b"data")
            assert False, "Should reject mismatched confirmation"
        except EncryptionFailed:
            pass
        assert not os.path.exists(path)

        session = Session(ScriptedCipher("pw"), prompt=Prompter("pw", "pw"))
        session.write(path, b"data")
        with open(path, 'rb') as f:
            assert f.read() == b"data"
        assert session.cache.get() == "pw"
        session.write(path, b"more")
        with open(path, 'rb') as f:
            assert f.read() == b"more"
    print("  [OK] Session write prompts once, then uses the cache")


def completed(args, returncode=0, stdout=b"", stderr=b""):
    return subprocess.CompletedProcess(args, returncode, stdout=stdout, stderr=stderr)


def test_gpg_decrypt_commands():
    """GpgCipher uses the agent unless told otherwise."""
    print("Testing GpgCipher decrypt...")

    cipher = GpgCipher(binary="gpg2", homedir="/tmp/gnupg")
    with mock.patch("userpass.cipher.subprocess.run") as run:
        run.side_effect = lambda args, **kw: completed(args, stdout=b"plain")

        assert cipher.decrypt("file.gpg") == b"plain"
        args, kwargs = run.call_args
        assert args[0] == ["gpg2", "--quiet", "--batch", "--homedir", "/tmp/gnupg",
                           "--decrypt", "file.gpg"]
        assert kwargs["input"] is None
        assert kwargs["stdin"] == subprocess.DEVNULL
        print("  [OK] Agent attempt passes no passphrase")

        assert cipher.decrypt("file.gpg", "pw", use_agent=False) == b"plain"
        args, kwargs = run.call_args
        assert "--pinentry-mode" in args[0] and "loopback" in args[0]
        assert args[0][-1] == "file.gpg"
        assert kwargs["input"] == b"pw\n"
        print("  [OK] Manual attempt bypasses the agent via loopback")

    with mock.patch("userpass.cipher.subprocess.run") as run:
        run.return_value = completed([], returncode=2, stderr=b"gpg: decryption failed: Bad session key")
        try:
            cipher.decrypt("file.gpg", "bad", use_agent=False)
            assert False, "Should raise CipherError"
        except CipherError as e:
            assert "Bad session key" in str(e)

    with mock.patch("userpass.cipher.subprocess.run", side_effect=FileNotFoundError("gpg2")):
        try:
            cipher.decrypt("file.gpg")
            assert False, "Should raise CipherError"
        except CipherError:
            pass
    print("  [OK] gpg failures become CipherError")


def test_gpg_encrypt_commands():
    """Symmetric vs public-key encryption."""
    print("Testing GpgCipher encrypt...")

    symmetric = GpgCipher()
    assert symmetric.requires_secret
    with mock.patch("userpass.cipher.subprocess.run") as run:
        run.side_effect = lambda args, **kw: completed(args)
        symmetric.encrypt("out.gpg.new", b"100\tk\tu\ts\n", "pw")
        args, kwargs = run.call_args
        assert "--symmetric" in args[0]
        assert args[0][args[0].index("--output") + 1] == "out.gpg.new"
        assert kwargs["input"] == b"pw\n100\tk\tu\ts\n"
        try:
            symmetric.encrypt("out.gpg.new", b"data")
            assert False, "Symmetric encryption needs a passphrase"
        except CipherError:
            pass
    print("  [OK] Symmetric encryption feeds passphrase then data")

    public = GpgCipher(recipients=["alice@example.com", "ABCDEF12"])
    assert not public.requires_secret
    with mock.patch("userpass.cipher.subprocess.run") as run:
        run.side_effect = lambda args, **kw: completed(args)
        public.encrypt("out.gpg.new", b"data")
        args, kwargs = run.call_args
        assert "--encrypt" in args[0]
        assert args[0].count("--recipient") == 2
        assert kwargs["input"] == b"data"
    print("  [OK] Public-key encryption lists recipients")


def run_all_tests():
    print("=" * 70)
    print("userpass - Cipher & Session Test Suite")
    print("=" * 70)
    print()

    tests = [
        test_seal_unseal,
        test_password_generation,
        test_vault_cipher_files,
        test_session_agent_first,
        test_session_retry_budget,
        test_session_cache_lifecycle,
        test_session_write_new_passphrase,
        test_gpg_decrypt_commands,
        test_gpg_encrypt_commands,
    ]

    failed = []

    for test in tests:
        try:
            test()
            print()
        except Exception as e:
            print(f"  [FAIL] TEST FAILED: {e}")
            failed.append((test.__name__, e))
            print()

    print("=" * 70)
    if not failed:
        print("[OK] ALL TESTS PASSED!")
    else:
        print(f"[FAIL] {len(failed)} TESTS FAILED:")
        for name, error in failed:
            print(f"  - {name}: {error}")
    print("=" * 70)

    return len(failed) == 0


if __name__ == "__main__":
    import sys
    success = run_all_tests()
    sys.exit(0 if success else 1)
