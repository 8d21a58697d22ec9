from roompoll.result import Err, ErrorCode, Ok, http_status, is_err, is_ok, map_result, unwrap_or


def test_tagged_results() -> None:
    ok = Ok([1, 2])
    err = Err(ErrorCode.NETWORK_ERROR)

    assert ok.success and is_ok(ok) and not is_err(ok)
    assert not err.success and is_err(err)
    assert map_result(ok, len) == Ok(2)
    assert map_result(err, len) is err
    assert unwrap_or(err, []) == []
    assert unwrap_or(ok, []) == [1, 2]


def test_error_code_parse_falls_back_to_internal_error() -> None:
    assert ErrorCode.parse("NOT_A_MEMBER") is ErrorCode.NOT_A_MEMBER
    assert ErrorCode.parse("RATE_LIMITED") is ErrorCode.INTERNAL_ERROR
    assert ErrorCode.parse(None) is ErrorCode.INTERNAL_ERROR


def test_every_error_code_has_http_status() -> None:
    assert http_status(ErrorCode.NOT_A_MEMBER) == 403
    assert http_status(ErrorCode.NETWORK_ERROR) == 503
    assert http_status(ErrorCode.INTERNAL_ERROR) == 500
    for code in ErrorCode:
        assert http_status(code) in (400, 401, 403, 404, 409, 500, 503)
