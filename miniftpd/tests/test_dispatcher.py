import re
import socket
import tempfile
import unittest
from unittest import mock
from miniftpd.core.command import parse_command
from miniftpd.core.data_channel import ActiveMode, NoMode, PassiveMode
from miniftpd.core.dispatcher import CommandDispatcher
from miniftpd.core.session import Session
from miniftpd.core.transfer import TransferEngine
from miniftpd.core.transport import Transport
from miniftpd.tests.support import FakeControl


class DispatcherTestCase(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.session = Session(self.tmp.name, "127.0.0.1", Transport(timeout=5))
        self.control = FakeControl()
        self.engine = mock.Mock(spec=TransferEngine)
        self.recorder = mock.Mock()
        self.dispatcher = CommandDispatcher(
            self.session, self.engine, self.control,
            recorder=self.recorder, system_name="UNIX Type: L8"
        )

    def tearDown(self):
        self.session.close()
        self.tmp.cleanup()

    def run_lines(self, *lines):
        results = [self.dispatcher.dispatch(parse_command(line + "\r\n")) for line in lines]
        return results

    def login(self):
        self.run_lines("USER anonymous")
        self.control.replies.clear()


class TestAuthorizationGate(DispatcherTestCase):
    def test_everything_needs_login(self):
        """Test that no command runs before login."""
        lines = ["CWD pub", "CDUP", "PWD", "DELE f", "RMD d", "MKD d", "LIST", "RETR f",
                 "STOR f", "PASV", "PORT 127,0,0,1,0,80", "SYST", "NOOP", "HELP", "TYPE I",
                 "QUIT", "BOGUS"]
        results = self.run_lines(*lines)
        self.assertEqual(self.control.codes, [530] * len(lines))
        self.assertTrue(all(results))
        self.assertEqual(self.engine.method_calls, [])
        self.assertIsInstance(self.session.data_channel.mode, NoMode)
        self.assertFalse(self.control.closed)

    def test_pending_password_still_gated(self):
        """Test that USER alone does not open the command set."""
        self.run_lines("USER bob", "LIST")
        self.assertEqual(self.control.codes, [331, 530])
        self.engine.list.assert_not_called()

    def test_login_recorded(self):
        """Test that successful logins reach the recorder."""
        self.run_lines("USER bob", "PASS secret")
        self.assertEqual(self.control.codes, [331, 230])
        self.recorder.login.assert_called_once_with(username="bob", client_ip="127.0.0.1")

    def test_failed_login_not_recorded(self):
        """Test that rejected logins are not recorded."""
        self.run_lines("PASS secret", "USER anonymous", "PASS secret")
        self.assertEqual(self.control.codes, [332, 230, 530])
        self.recorder.login.assert_called_once_with(username="anonymous", client_ip="127.0.0.1")


class TestRouting(DispatcherTestCase):
    def setUp(self):
        super().setUp()
        self.login()

    def test_engine_commands(self):
        """Test that filesystem verbs reach the transfer engine."""
        self.run_lines("CWD pub", "LIST", "RETR a b.txt", "MKD new")
        self.engine.cwd.assert_called_once_with("pub")
        self.engine.list.assert_called_once_with("")
        self.engine.retr.assert_called_once_with("a b.txt")
        self.engine.mkd.assert_called_once_with("new")

    def test_fixed_replies(self):
        """Test SYST, HELP, NOOP and TYPE."""
        self.run_lines("SYST", "HELP", "NOOP", "TYPE I")
        self.assertEqual(self.control.replies[0], (215, "UNIX Type: L8"))
        self.assertEqual(self.control.codes, [215, 200, 200, 200])

    def test_unknown_and_lowercase(self):
        """Test that unknown and lower-case verbs get 500."""
        self.run_lines("FEAT", "noop", "")
        self.assertEqual(self.control.codes, [500, 500, 500])

    def test_quit(self):
        """Test that QUIT replies, closes and ends the session."""
        self.assertEqual(self.run_lines("QUIT"), [False])
        self.assertEqual(self.control.codes, [221])
        self.assertTrue(self.control.closed)

    def test_port(self):
        """Test that PORT switches to active mode."""
        self.run_lines("PORT 127,0,0,1,0,80")
        self.assertEqual(self.control.replies, [(200, "Entering Active Mode.")])
        self.assertEqual(self.session.data_channel.mode, ActiveMode("127.0.0.1", 80))

    def test_bad_port(self):
        """Test that a malformed PORT is a 501 and keeps the mode."""
        self.run_lines("PORT 127,0,0,1,0,80", "PORT 127,0,0,1", "PORT a,b,c,d,e,f")
        self.assertEqual(self.control.codes, [200, 501, 501])
        self.assertEqual(self.session.data_channel.mode, ActiveMode("127.0.0.1", 80))

    def test_port_non_ascii_digits(self):
        """Test that Unicode digits in PORT are a 501, not a crash."""
        results = self.run_lines("PORT 127,0,0,1,0,²", "NOOP")
        self.assertEqual(self.control.codes, [501, 200])
        self.assertTrue(all(results))
        self.assertIsInstance(self.session.data_channel.mode, NoMode)

    def test_pasv(self):
        """Test the PASV reply and that its listener accepts connections."""
        self.run_lines("PASV")
        code, message = self.control.replies[0]
        self.assertEqual(code, 200)
        match = re.search(r"\((\d+),(\d+),(\d+),(\d+),(\d+),(\d+)\)", message)
        self.assertIsNotNone(match)
        values = [int(v) for v in match.groups()]
        self.assertEqual(values[:4], [127, 0, 0, 1])
        port = values[4] * 256 + values[5]
        self.assertIsInstance(self.session.data_channel.mode, PassiveMode)
        self.assertEqual(self.session.data_channel.mode.port, port)
        client = socket.create_connection(("127.0.0.1", port), timeout=5)
        client.close()

    def test_pasv_strict(self):
        """Test that strict mode uses 227 and the advertised address."""
        self.dispatcher.strict = True
        self.dispatcher.pasv_address = "203.0.113.7"
        self.run_lines("PASV")
        code, message = self.control.replies[0]
        self.assertEqual(code, 227)
        self.assertIn("(203,0,113,7,", message)


if __name__ == "__main__":
    unittest.main()
