"""Unit tests for FTPSessionConfig, FTPSession and SessionStore.

Tests connection lifecycle, keep-alive reuse, single-request
operations and error mapping.
"""

import pytest
import socket
import ssl
import threading
from ftplib import error_perm, error_temp
from unittest.mock import MagicMock, patch

from backupftp.ftp.exceptions import (
    FTPAuthenticationError,
    FTPConnectionError,
    FTPNotConnectedError,
    FTPNotFoundError,
    FTPProtocolError,
    FTPTimeoutError,
)
from backupftp.ftp.session import (
    ConnectionState,
    DEFAULT_SESSION_NAME,
    FTPSession,
    FTPSessionConfig,
    SessionStore,
    connect,
)


class TestFTPSessionConfig:
    """Tests for FTPSessionConfig dataclass."""

    def test_default_values(self):
        """Test default configuration values."""
        config = FTPSessionConfig(endpoint="192.168.1.100")
        assert config.username == "anonymous"
        assert config.use_tls is False
        assert config.ignore_cert_errors is False
        assert config.keep_alive is False
        assert config.binary_mode is True
        assert config.passive_mode is True
        assert config.session_name == DEFAULT_SESSION_NAME
        assert config.connect_timeout == 30
        assert config.read_timeout == 60

    def test_derived_address(self):
        """Test URL, host and port derived from the endpoint."""
        config = FTPSessionConfig(endpoint="backup.local:2121/sql/")
        assert config.url == "ftp://backup.local:2121/sql"
        assert config.host == "backup.local"
        assert config.port == 2121

    def test_default_port(self):
        config = FTPSessionConfig(endpoint="ftp://backup.local")
        assert config.address == ("backup.local", 21)

    def test_empty_endpoint_raises_error(self):
        """Test that empty endpoint raises ValueError."""
        with pytest.raises(ValueError, match="Endpoint is required"):
            FTPSessionConfig(endpoint="")

    def test_invalid_port_raises_error(self):
        """Test that invalid port raises ValueError."""
        with pytest.raises(ValueError, match="Port must be between"):
            FTPSessionConfig(endpoint="ftp://192.168.1.1:0")
        with pytest.raises(ValueError, match="Port must be between"):
            FTPSessionConfig(endpoint="ftp://192.168.1.1:70000")

    def test_ftps_endpoint_rejected(self):
        """Test an ftps:// endpoint is refused instead of being misread as a host."""
        with pytest.raises(ValueError, match="use_tls=True"):
            FTPSessionConfig(endpoint="ftps://backup.local")

    def test_other_scheme_rejected(self):
        with pytest.raises(ValueError, match="Unsupported endpoint scheme 'sftp://'"):
            FTPSessionConfig(endpoint="sftp://backup.local:22")

    def test_invalid_host_raises_error(self):
        with pytest.raises(ValueError, match="Invalid host"):
            FTPSessionConfig(endpoint="ftp://bad_host!/x")

    def test_invalid_timeout_raises_error(self):
        """Test that invalid timeouts raise ValueError."""
        with pytest.raises(ValueError, match="Timeout must be between"):
            FTPSessionConfig(endpoint="192.168.1.1", connect_timeout=0.5)
        with pytest.raises(ValueError, match="Timeout must be between"):
            FTPSessionConfig(endpoint="192.168.1.1", read_timeout=1000)

    def test_empty_session_name_raises_error(self):
        with pytest.raises(ValueError, match="Session name is required"):
            FTPSessionConfig(endpoint="192.168.1.1", session_name="")

    def test_immutable(self):
        config = FTPSessionConfig(endpoint="192.168.1.1")
        with pytest.raises(AttributeError):
            config.endpoint = "10.0.0.1"


class TestFTPSessionConnection:
    """Tests for opening connections."""

    @patch("backupftp.ftp.session.FTP")
    def test_check_success(self, mock_ftp_class):
        """Test a successful connect-and-verify round trip."""
        mock_ftp = MagicMock()
        mock_ftp_class.return_value = mock_ftp

        config = FTPSessionConfig(endpoint="192.168.1.100:2121", username="backup", read_timeout=45)
        session = FTPSession(config, password="testpass")
        session.check()

        mock_ftp.connect.assert_called_once_with(host="192.168.1.100", port=2121, timeout=30)
        mock_ftp.login.assert_called_once_with(user="backup", passwd="testpass")
        mock_ftp.set_pasv.assert_called_once_with(True)
        mock_ftp.voidcmd.assert_called_with("NOOP")
        mock_ftp.sock.settimeout.assert_called_once_with(45)
        mock_ftp.quit.assert_called_once()
        assert session.connected_at is not None
        assert session.last_activity >= session.connected_at
        assert session.state == ConnectionState.DISCONNECTED

    @patch("backupftp.ftp.session.FTP")
    def test_active_mode(self, mock_ftp_class):
        mock_ftp = MagicMock()
        mock_ftp_class.return_value = mock_ftp

        FTPSession(FTPSessionConfig(endpoint="h", passive_mode=False)).check()

        mock_ftp.set_pasv.assert_called_once_with(False)

    @patch("backupftp.ftp.session.FTP")
    def test_connect_socket_error(self, mock_ftp_class):
        """Test connection failure due to socket error."""
        mock_ftp = MagicMock()
        mock_ftp.connect.side_effect = socket.error("Connection refused")
        mock_ftp_class.return_value = mock_ftp

        session = FTPSession(FTPSessionConfig(endpoint="192.168.1.100"))

        with pytest.raises(FTPConnectionError) as exc_info:
            session.check()

        assert "192.168.1.100:21" in str(exc_info.value)
        assert "Connection refused" in str(exc_info.value)
        assert session.state == ConnectionState.ERROR
        assert "Connection refused" in session.error_message

    @patch("backupftp.ftp.session.FTP")
    def test_connect_timeout(self, mock_ftp_class):
        """Test connection timeout."""
        mock_ftp = MagicMock()
        mock_ftp.connect.side_effect = socket.timeout("Connection timed out")
        mock_ftp_class.return_value = mock_ftp

        session = FTPSession(FTPSessionConfig(endpoint="192.168.1.100", connect_timeout=5))

        with pytest.raises(FTPTimeoutError, match="after 5 seconds"):
            session.check()

        assert session.state == ConnectionState.ERROR

    @patch("backupftp.ftp.session.FTP")
    def test_connect_auth_failure(self, mock_ftp_class):
        """Test authentication failure."""
        mock_ftp = MagicMock()
        mock_ftp.login.side_effect = error_perm("530 Login incorrect")
        mock_ftp_class.return_value = mock_ftp

        session = FTPSession(FTPSessionConfig(endpoint="192.168.1.100", username="backup"))

        with pytest.raises(FTPAuthenticationError) as exc_info:
            session.check()

        assert isinstance(exc_info.value, FTPConnectionError)
        assert exc_info.value.username == "backup"
        assert "530" in str(exc_info.value)
        assert session.state == ConnectionState.ERROR

    @patch("backupftp.ftp.session.FTP")
    def test_unexpected_greeting_is_connection_error(self, mock_ftp_class):
        mock_ftp = MagicMock()
        mock_ftp.set_pasv.side_effect = error_temp("421 Too many users")
        mock_ftp_class.return_value = mock_ftp

        with pytest.raises(FTPConnectionError):
            FTPSession(FTPSessionConfig(endpoint="h")).check()

    @patch("backupftp.ftp.session.FTP_TLS")
    def test_tls_protects_data_channel(self, mock_tls_class):
        """Test TLS sessions switch the data channel to PROT P."""
        mock_ftp = MagicMock()
        mock_tls_class.return_value = mock_ftp

        FTPSession(FTPSessionConfig(endpoint="h", use_tls=True)).check()

        mock_ftp.prot_p.assert_called_once()
        context = mock_tls_class.call_args.kwargs["context"]
        assert context.verify_mode == ssl.CERT_REQUIRED

    @patch("backupftp.ftp.session.FTP_TLS")
    def test_tls_ignore_cert_errors(self, mock_tls_class):
        mock_tls_class.return_value = MagicMock()

        FTPSession(FTPSessionConfig(endpoint="h", use_tls=True, ignore_cert_errors=True)).check()

        context = mock_tls_class.call_args.kwargs["context"]
        assert context.check_hostname is False
        assert context.verify_mode == ssl.CERT_NONE


class TestFTPSessionRequests:
    """Tests for request() and keep-alive behavior."""

    @patch("backupftp.ftp.session.FTP")
    def test_each_request_opens_new_connection(self, mock_ftp_class):
        """Test requests without keep-alive are independent."""
        mock_ftp_class.return_value = MagicMock()
        session = FTPSession(FTPSessionConfig(endpoint="h"))

        with session.request():
            pass
        with session.request():
            pass

        assert mock_ftp_class.call_count == 2
        assert session.is_connected is False

    @patch("backupftp.ftp.session.FTP")
    def test_keep_alive_reuses_connection(self, mock_ftp_class):
        """Test keep-alive requests share one connection."""
        mock_ftp = MagicMock()
        mock_ftp_class.return_value = mock_ftp
        session = FTPSession(FTPSessionConfig(endpoint="h", keep_alive=True))

        with session.request() as first:
            pass
        with session.request() as second:
            pass

        assert first is second
        assert mock_ftp_class.call_count == 1
        assert session.is_connected is True
        mock_ftp.quit.assert_not_called()

    @patch("backupftp.ftp.session.FTP")
    def test_keep_alive_dropped_after_failure(self, mock_ftp_class):
        """Test a failed request discards the kept-alive connection."""
        mock_ftp_class.return_value = MagicMock()
        session = FTPSession(FTPSessionConfig(endpoint="h", keep_alive=True))

        with pytest.raises(RuntimeError):
            with session.request():
                raise RuntimeError("boom")

        assert session.is_connected is False
        with session.request():
            pass
        assert mock_ftp_class.call_count == 2

    @patch("backupftp.ftp.session.FTP")
    def test_keep_alive_reconnects_stale_connection(self, mock_ftp_class):
        stale = MagicMock()
        fresh = MagicMock()
        mock_ftp_class.side_effect = [stale, fresh]
        session = FTPSession(FTPSessionConfig(endpoint="h", keep_alive=True))

        with session.request():
            pass
        stale.voidcmd.side_effect = EOFError()
        with session.request() as ftp:
            assert ftp is fresh

    @patch("backupftp.ftp.session.FTP")
    def test_closed_session_rejects_requests(self, mock_ftp_class):
        """Test that a closed session cannot be used."""
        mock_ftp_class.return_value = MagicMock()
        session = FTPSession(FTPSessionConfig(endpoint="h", keep_alive=True))
        with session.request():
            pass

        session.close()

        assert session.is_closed is True
        assert session.state == ConnectionState.DISCONNECTED
        with pytest.raises(FTPNotConnectedError):
            with session.request():
                pass

    @patch("backupftp.ftp.session.FTP")
    def test_close_graceful_on_error(self, mock_ftp_class):
        """Test close handles quit errors gracefully."""
        mock_ftp = MagicMock()
        mock_ftp.quit.side_effect = Exception("Already closed")
        mock_ftp_class.return_value = mock_ftp
        session = FTPSession(FTPSessionConfig(endpoint="h", keep_alive=True))
        with session.request():
            pass

        session.close()  # Should not raise

        mock_ftp.close.assert_called_once()

    def test_password_not_in_repr(self):
        session = FTPSession(FTPSessionConfig(endpoint="h"), password="s3cret")
        assert "s3cret" not in repr(session)
        assert "s3cret" not in repr(session.config)


class TestFTPSessionOperations:
    """Tests for single-request operations against the fake server."""

    def test_resolve(self, session):
        assert session.resolve("sql//daily/") == "ftp://backup.local/sql/daily"

    def test_size_of_file(self, session, fake_ftp):
        """Test size returns the exact byte length of a file."""
        fake_ftp.add_file("/sql/a.bak", b"x" * 1234)

        assert session.size("sql/a.bak") == 1234
        assert "TYPE I" in fake_ftp.commands

    def test_size_of_directory(self, session, fake_ftp):
        """Test size returns -1 for a directory."""
        fake_ftp.add_dir("/sql")

        assert session.size("sql") == -1
        assert session.size("") == -1

    def test_size_restores_working_directory(self, session, fake_ftp):
        fake_ftp.add_dir("/sql")
        session.size("sql")
        assert fake_ftp.pwd() == "/"

    def test_size_of_missing_path(self, session):
        """Test size raises FTPNotFoundError for a missing path."""
        with pytest.raises(FTPNotFoundError) as exc_info:
            session.size("nope.bak")

        assert exc_info.value.path == "ftp://backup.local/nope.bak"

    def test_size_other_refusal_is_protocol_error(self, session, fake_ftp):
        fake_ftp.size = MagicMock(side_effect=error_perm("504 Command not implemented"))

        with pytest.raises(FTPProtocolError, match="query size of"):
            session.size("a.bak")

    def test_size_timeout(self, session, fake_ftp):
        fake_ftp.size = MagicMock(side_effect=socket.timeout("timed out"))

        with pytest.raises(FTPTimeoutError):
            session.size("a.bak")

    def test_list_raw(self, session, fake_ftp):
        """Test LIST output is returned verbatim."""
        fake_ftp.add_dir("/sql/sub")
        fake_ftp.add_file("/sql/a.txt", b"x" * 1024)

        text = session.list_raw("sql")

        assert text.splitlines() == [
            "-rw-r--r-- 1 ftp ftp 1024 Jun 15 12:49 a.txt",
            "drwxr-xr-x 2 ftp ftp 0 Jun 19 12:58 sub",
        ]
        assert "LIST /sql" in fake_ftp.commands

    def test_delete_file(self, session, fake_ftp):
        fake_ftp.add_file("/a.bak", b"1")
        session.delete_file("a.bak")
        assert "/a.bak" not in fake_ftp.files

    def test_delete_missing_file_is_protocol_error(self, session):
        """Test server refusals carry path and original message."""
        with pytest.raises(FTPProtocolError) as exc_info:
            session.delete_file("a.bak")

        assert exc_info.value.path == "ftp://backup.local/a.bak"
        assert "550" in str(exc_info.value)

    def test_make_and_remove_directory(self, session, fake_ftp):
        assert session.make_directory("sql/new") == "ftp://backup.local/sql/new"
        assert "/sql/new" in fake_ftp.dirs

        session.remove_directory("sql/new")
        assert "/sql/new" not in fake_ftp.dirs

    def test_rename(self, session, fake_ftp):
        """Test rename keeps the item in its parent directory."""
        fake_ftp.add_file("/sql/old.bak", b"data")

        new_url = session.rename("sql/old.bak", "new.bak")

        assert new_url == "ftp://backup.local/sql/new.bak"
        assert fake_ftp.files == {"/sql/new.bak": b"data"}

    def test_rename_rejects_paths(self, session):
        with pytest.raises(ValueError):
            session.rename("sql/old.bak", "other/new.bak")


class TestConnect:
    """Tests for connect() and SessionStore."""

    @patch("backupftp.ftp.session.FTP")
    def test_connect_validates_and_registers(self, mock_ftp_class):
        mock_ftp_class.return_value = MagicMock()
        store = SessionStore()
        config = FTPSessionConfig(endpoint="h", session_name="nightly")

        session = connect(config, "pw", store=store)

        assert store.get("nightly") is session
        assert "nightly" in store
        assert store.names() == ["nightly"]

    @patch("backupftp.ftp.session.FTP")
    def test_connect_failure_does_not_register(self, mock_ftp_class):
        mock_ftp = MagicMock()
        mock_ftp.connect.side_effect = OSError("unreachable")
        mock_ftp_class.return_value = mock_ftp
        store = SessionStore()

        with pytest.raises(FTPConnectionError):
            store.connect(FTPSessionConfig(endpoint="h"), "pw")

        assert len(store) == 0

    def test_register_replaces_same_name(self):
        """Test a later session with the same name replaces and closes the old one."""
        store = SessionStore()
        first = FTPSession(FTPSessionConfig(endpoint="h1"))
        second = FTPSession(FTPSessionConfig(endpoint="h2"))

        assert store.register(first) is None
        assert store.register(second) is first

        assert first.is_closed is True
        assert store.get() is second

    def test_remove_and_close_all(self):
        store = SessionStore()
        a = FTPSession(FTPSessionConfig(endpoint="h", session_name="a"))
        b = FTPSession(FTPSessionConfig(endpoint="h", session_name="b"))
        store.register(a)
        store.register(b)

        assert store.remove("a") is a
        assert a.is_closed is True
        assert store.get("a") is None

        store.close_all()
        assert b.is_closed is True
        assert len(store) == 0

    def test_concurrent_registration(self):
        """Test registry writes from many threads are not lost."""
        store = SessionStore()

        def register(index: int) -> None:
            store.register(FTPSession(FTPSessionConfig(endpoint="h", session_name=f"s{index}")))

        threads = [threading.Thread(target=register, args=(i,)) for i in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(store) == 20
