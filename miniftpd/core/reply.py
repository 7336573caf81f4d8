"""Control channel reply codec."""

# Reply texts used by the server, keyed by code
messages = {
    150: "File status okay; about to open data connection.",
    200: "Command okay.",
    215: "UNIX Type: L8",
    220: "Service ready for new user.",
    221: "Service closing control connection.",
    226: "Transfer complete.",
    227: "Entering Passive Mode",
    230: "User logged in, proceed.",
    250: "Requested file action okay, completed.",
    331: "User name okay, need password.",
    332: "Need account for login.",
    425: "Can't open data connection.",
    500: "Unknown command.",
    501: "Syntax error in parameters or arguments.",
    530: "Login incorrect.",
    550: "Requested action not taken.",
}


def format_reply(code: int, message: str = None) -> bytes:
    """Encode a reply as a control channel line.

    Backslash path separators are rewritten to the forward slashes FTP
    clients expect; nothing else is escaped.

    Args:
        code: Three digit reply code
        message: Reply text, defaults to the standard text for the code

    Returns:
        The encoded ``"<code> <message>\\r\\n"`` line
    """
    if not 100 <= code <= 599:
        raise ValueError(f"Invalid reply code: {code}")
    if message is None:
        message = messages.get(code, "")
    message = message.replace('\\', '/')
    return f"{code} {message}\r\n".encode('utf-8')
