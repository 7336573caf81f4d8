import ftplib
import io
import os
import re
import socket
import tempfile
import threading
import unittest
from miniftpd.core.ftp_server import FTPServer
from miniftpd.core.thread_manager import ThreadManager


class ServerTestCase(unittest.TestCase):
    strict = False

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.server = FTPServer(
            root=self.tmp.name,
            host="127.0.0.1",
            port=0,
            strict=self.strict,
            connection_timeout=10,
            data_timeout=5,
            thread_manager=ThreadManager(max_workers=4, max_connections_per_ip=4),
        )
        self.thread = threading.Thread(target=self.server.start, daemon=True)
        self.thread.start()
        self.assertTrue(self.server.ready.wait(5))

    def tearDown(self):
        self.server.stop()
        self.thread.join(5)
        self.server.thread_manager.shutdown(timeout=5)
        self.tmp.cleanup()


class TestWithFtplib(ServerTestCase):
    strict = True

    def test_session(self):
        """Test a full client session with the standard library client."""
        ftp = ftplib.FTP()
        ftp.connect("127.0.0.1", self.server.port, timeout=5)
        try:
            self.assertTrue(ftp.getwelcome().startswith("220"))
            ftp.login("bob", "secret")
            self.assertEqual(ftp.pwd(), "/")

            ftp.mkd("pub")
            ftp.cwd("pub")
            self.assertEqual(ftp.pwd(), "/pub")

            payload = os.urandom(100000)
            ftp.storbinary("STOR data.bin", io.BytesIO(payload))
            received = io.BytesIO()
            ftp.retrbinary("RETR data.bin", received.write)
            self.assertEqual(received.getvalue(), payload)

            lines = []
            ftp.retrlines("LIST", lines.append)
            self.assertEqual(lines, ["-rwxrwxrwx 1 unknown unknown 100000 Jan 1 09:00 data.bin"])

            ftp.delete("data.bin")
            ftp.cwd("/")
            ftp.rmd("pub")
            self.assertEqual(os.listdir(self.tmp.name), [])

            with self.assertRaises(ftplib.error_perm):
                ftp.cwd("/missing")
        finally:
            ftp.quit()


class TestRawProtocol(ServerTestCase):
    def setUp(self):
        super().setUp()
        self.sock = socket.create_connection(("127.0.0.1", self.server.port), timeout=5)
        self.reader = self.sock.makefile("rb")

    def tearDown(self):
        self.reader.close()
        self.sock.close()
        super().tearDown()

    def command(self, line):
        self.sock.sendall(line.encode() + b"\r\n")
        return self.reader.readline().decode()

    def passive_port(self):
        reply = self.command("PASV")
        self.assertTrue(reply.startswith("200 "), reply)
        values = [int(v) for v in re.search(r"\((\d+(?:,\d+){5})\)", reply).group(1).split(",")]
        return values[4] * 256 + values[5]

    def test_round_trip(self):
        """Test STOR then RETR over passive connections with default replies."""
        self.assertTrue(self.reader.readline().startswith(b"220 "))
        self.assertTrue(self.command("NOOP").startswith("530 "))
        self.assertTrue(self.command("USER anonymous").startswith("230 "))
        self.assertTrue(self.command("LIST").startswith("425 "))

        port = self.passive_port()
        data = socket.create_connection(("127.0.0.1", port), timeout=5)
        data.sendall(b"hello world")
        data.shutdown(socket.SHUT_WR)
        self.assertTrue(self.command("STOR hello.txt").startswith("226 "))
        data.close()

        port = self.passive_port()
        data = socket.create_connection(("127.0.0.1", port), timeout=5)
        self.sock.sendall(b"RETR hello.txt\r\n")
        chunks = []
        while True:
            chunk = data.recv(4096)
            if not chunk:
                break
            chunks.append(chunk)
        data.close()
        self.assertTrue(self.reader.readline().startswith(b"226 "))
        self.assertEqual(b"".join(chunks), b"hello world")

        self.assertTrue(self.command("QUIT").startswith("221 "))
        self.assertEqual(self.reader.readline(), b"")

    def test_session_survives_bad_arguments(self):
        """Test that odd but well-formed input fails only the command."""
        self.reader.readline()
        self.command("USER anonymous")
        with open(os.path.join(os.fsencode(self.tmp.name), b"bad\xff"), "wb") as f:
            f.write(b"x")

        self.assertTrue(self.command("PORT 127,0,0,1,0,²").startswith("501 "))
        self.assertTrue(self.command("MKD a\x00b").startswith("550 "))

        port = self.passive_port()
        data = socket.create_connection(("127.0.0.1", port), timeout=5)
        self.sock.sendall(b"LIST\r\n")
        listing = data.makefile("rb").read()
        data.close()
        self.assertTrue(self.reader.readline().startswith(b"226 "))
        self.assertEqual(listing, b"-rwxrwxrwx 1 unknown unknown 1 Jan 1 09:00 bad\xff\r\n")

        self.assertTrue(self.command("NOOP").startswith("200 "))

    def test_active_list(self):
        """Test LIST over an active mode connection."""
        self.reader.readline()
        self.command("USER anonymous")
        with open(os.path.join(self.tmp.name, "a.txt"), "wb") as f:
            f.write(b"abc")

        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        listener.bind(("127.0.0.1", 0))
        listener.listen(1)
        listener.settimeout(5)
        port = listener.getsockname()[1]
        try:
            self.assertTrue(self.command(f"PORT 127,0,0,1,{port // 256},{port % 256}").startswith("200 "))
            self.sock.sendall(b"LIST\r\n")
            conn, _ = listener.accept()
            listing = conn.makefile("rb").read()
            conn.close()
        finally:
            listener.close()
        self.assertTrue(self.reader.readline().startswith(b"226 "))
        self.assertEqual(listing, b"-rwxrwxrwx 1 unknown unknown 3 Jan 1 09:00 a.txt\r\n")


class TestServerSetup(unittest.TestCase):
    def test_missing_root(self):
        """Test that a missing root directory is a startup error."""
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(FileNotFoundError):
                FTPServer(root=os.path.join(tmp, "missing"), port=0,
                          thread_manager=ThreadManager(max_workers=1))


if __name__ == "__main__":
    unittest.main()
