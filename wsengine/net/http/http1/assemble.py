from wsengine.http import HandshakeRequest
from wsengine.http import HandshakeResponse


def assemble_request_head(request: HandshakeRequest) -> bytes:
    first_line = b"%s %s %s" % (
        request.method.encode("ascii"),
        request.path.encode("ascii"),
        request.http_version.encode("ascii"),
    )
    return b"%s\r\n%s\r\n" % (first_line, bytes(request.headers))


def assemble_response_head(response: HandshakeResponse) -> bytes:
    first_line = b"%s %d %s" % (
        response.http_version.encode("ascii"),
        response.status_code,
        response.reason.encode("utf-8"),
    )
    return b"%s\r\n%s\r\n" % (first_line, bytes(response.headers))


def assemble_response(response: HandshakeResponse) -> bytes:
    return assemble_response_head(response) + response.content
