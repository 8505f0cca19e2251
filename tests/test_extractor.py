from __future__ import annotations

from datetime import timedelta

import pytest

from nauta_connect.portal.extractor import (
    FieldMap,
    check_for_inline_alert,
    extract_hidden_form_fields,
    extract_session_tokens_from_script,
    format_duration,
    try_parse_duration,
)
from nauta_connect.result import FailureKind


LOGIN_FORM_HTML = """
<form class='form' action='https://secure.etecsa.net:8443//LoginServlet' method='post' id='formulario'>
    <input type='hidden' name='wlanuserip' id='wlanuserip' value='10.227.108.183'/>
    <input type='hidden' name='wlanacname' id='wlanacname' value=''/>
    <input type='hidden' name='wlanmac' id='wlanmac' value='' />
    <input type='hidden' name='firsturl' id='firsturl' value='notFound.jsp' />
    <input type='hidden' name='ssid' id='ssid' value='' />
    <input type='hidden' name='usertype' id='usertype' value='' />
    <input type='hidden' name='gotopage' id='gotopage' value='/nauta_etecsa/LoginURL/pc_login.jsp' />
    <input type='hidden' name='successpage' id='successpage' value='/nauta_etecsa/OnlineURL/pc_index.jsp' />
    <input type='hidden' name='loggerId' id='loggerId' value='20260114155929643' />
    <input type='hidden' name='lang' id='lang' value='es_ES' />

    <label for='nombre'>Usuario:</label> <input name='username' id='username' type='text'>
    <input class='btn' name='Enviar' value='Aceptar' type='button'>

    <input type='hidden' name='CSRFHW' value='a54c4e25938d36457d64c31db31d7d23' />
</form>
"""

REAL_ONLINE_SCRIPT = """
<script type="text/javascript">
    var urlParam = "ATTRIBUTE_UUID=043E25F746061CF85F147D59ECB9960C&CSRFHW=be0d60f382c4a393caa36979b44c3622"
                 + "&wlanuserip=10.227.53.40"
                 + "&loggerId=20260121163024923+samir1604@nauta.com.cu"
                 + "&username=samir1604@nauta.com.cu";
</script>
"""


def test_hidden_fields_extracts_only_hidden_inputs_from_real_form() -> None:
    result = extract_hidden_form_fields(LOGIN_FORM_HTML)
    assert result.ok
    fields = result.value

    assert len(fields) == 11
    assert fields["wlanuserip"] == "10.227.108.183"
    assert fields["loggerId"] == "20260114155929643"
    assert fields["CSRFHW"] == "a54c4e25938d36457d64c31db31d7d23"
    assert "username" not in fields
    assert "Enviar" not in fields


def test_hidden_fields_keys_are_case_insensitive() -> None:
    fields = extract_hidden_form_fields('<INPUT TYPE="HIDDEN" NAME="csrfhw" VALUE="x">').value
    assert fields["CSRFHW"] == "x"
    assert list(fields) == ["csrfhw"]


def test_hidden_fields_last_duplicate_wins() -> None:
    html = '<input type="hidden" name="lang" value="en"><input type="hidden" name="lang" value="es_ES">'
    assert extract_hidden_form_fields(html).value["lang"] == "es_ES"


def test_hidden_fields_without_hidden_inputs_is_parser_error() -> None:
    result = extract_hidden_form_fields("<html><body><input type='text' name='q'></body></html>")
    assert result.failed
    assert result.failure.kind is FailureKind.PARSER_ERROR


def test_hidden_fields_ignores_unnamed_inputs() -> None:
    result = extract_hidden_form_fields("<input type='hidden' value='orphan'><input type='hidden' name='' value='x'>")
    assert result.failed


@pytest.mark.parametrize(
    "html,expected",
    [
        ("<script>alert('Error 1');</script>", "Error 1"),
        ('<script>alert("Error 1");</script>', "Error 1"),
    ],
)
def test_inline_alert_with_either_quote_style(html: str, expected: str) -> None:
    result = check_for_inline_alert(html)
    assert result.failed
    assert result.failure.message == expected
    assert result.failure.kind is FailureKind.UNEXPECTED_RESPONSE


@pytest.mark.parametrize(
    "text,kind",
    [
        ("Usted no tiene saldo en su cuenta.", FailureKind.NO_BALANCE),
        ("Su SALDO es insuficiente", FailureKind.NO_BALANCE),
        ("El nombre de usuario o contraseña son incorrectos.", FailureKind.INVALID_CREDENTIALS),
        ("Entre el nombre de Usuario", FailureKind.INVALID_CREDENTIALS),
        ("Contraseña incorrecta", FailureKind.INVALID_CREDENTIALS),
        ("Su cuenta ha expirado", FailureKind.UNEXPECTED_RESPONSE),
    ],
)
def test_inline_alert_kind_follows_text(text: str, kind: FailureKind) -> None:
    result = check_for_inline_alert(f"<html><script>\n  alert('{text}');\n</script></html>")
    assert result.failure.kind is kind
    assert result.failure.message == text


def test_inline_alert_spanning_lines() -> None:
    html = "<script>\nalert(\n  'line one'\n);\n</script>"
    assert check_for_inline_alert(html).failure.message == "line one"


def test_no_alert_is_success() -> None:
    assert check_for_inline_alert("<script>var x = 1;</script><p>alert('not in a script')</p>").ok


def test_tokens_from_single_literal() -> None:
    result = extract_session_tokens_from_script(
        "var urlParam = 'ATTRIBUTE_UUID=ABC123&CSRFHW=token456&loggerId=log789';"
    )
    assert result.ok
    assert result.value["ATTRIBUTE_UUID"] == "ABC123"
    assert result.value["CSRFHW"] == "token456"
    assert result.value["loggerId"] == "log789"
    assert "username" not in result.value


def test_tokens_from_real_concatenated_script() -> None:
    result = extract_session_tokens_from_script(REAL_ONLINE_SCRIPT)
    assert result.ok
    tokens = result.value
    assert tokens["ATTRIBUTE_UUID"] == "043E25F746061CF85F147D59ECB9960C"
    assert tokens["CSRFHW"] == "be0d60f382c4a393caa36979b44c3622"
    assert tokens["loggerId"] == "20260121163024923+samir1604@nauta.com.cu"
    assert tokens["username"] == "samir1604@nauta.com.cu"
    assert "wlanuserip" not in tokens


def test_tokens_match_keys_case_insensitively_and_trim_spaces() -> None:
    result = extract_session_tokens_from_script("var p = 'attribute_uuid = U1 & csrfhw= C1';")
    assert result.ok
    assert result.value["ATTRIBUTE_UUID"] == "U1"
    assert result.value["CSRFHW"] == "C1"


def test_tokens_from_bare_assignments() -> None:
    result = extract_session_tokens_from_script("var ATTRIBUTE_UUID=ABC123XYZ; var CSRFHW=987654;")
    assert result.ok
    assert result.value["ATTRIBUTE_UUID"] == "ABC123XYZ"
    assert result.value["CSRFHW"] == "987654"


def test_alert_short_circuits_token_extraction() -> None:
    result = extract_session_tokens_from_script(
        "<script>alert('Su cuenta ha expirado');</script> var ATTRIBUTE_UUID=123; var CSRFHW=1;"
    )
    assert result.failed
    assert result.failure.kind is FailureKind.UNEXPECTED_RESPONSE
    assert result.failure.message == "Su cuenta ha expirado"


@pytest.mark.parametrize(
    "malformed",
    [
        "var ATTRIBUTE_UUID=;",
        "var CSRFHW ;",
        "var loggerId=",
        "totalmente_otro_texto",
        "var p = 'ATTRIBUTE_UUID=only-one';",
    ],
)
def test_tokens_missing_mandatory_keys_is_parser_error(malformed: str) -> None:
    result = extract_session_tokens_from_script(malformed)
    assert result.failed
    assert result.failure.kind is FailureKind.PARSER_ERROR
    assert "could not extract" in result.failure.message


@pytest.mark.parametrize(
    "text,hours,minutes,seconds",
    [
        ("38:03:59", 38, 3, 59),
        ("125:00:00", 125, 0, 0),
        ("00:59:59", 0, 59, 59),
        (" 01:02:03\n", 1, 2, 3),
    ],
)
def test_parse_duration_allows_hours_over_24(text: str, hours: int, minutes: int, seconds: int) -> None:
    ok, value = try_parse_duration(text)
    assert ok
    assert value == timedelta(hours=hours, minutes=minutes, seconds=seconds)
    assert int(value.total_seconds()) // 3600 == hours


@pytest.mark.parametrize("text", ["bad", "", None, "1:2", "1:2:3:4", "aa:00:00", "01:-1:00", "01:60:00", "errorop"])
def test_parse_duration_rejects_malformed(text) -> None:
    ok, value = try_parse_duration(text)
    assert not ok
    assert value == timedelta(0)


def test_format_duration_keeps_hours_past_a_day() -> None:
    assert format_duration(timedelta(hours=125, minutes=4, seconds=5)) == "125:04:05"
    assert format_duration(timedelta(seconds=59)) == "00:00:59"


def test_field_map_behaves_like_case_insensitive_dict() -> None:
    m = FieldMap({"CSRFHW": "a"})
    m["csrfhw"] = "b"
    assert len(m) == 1
    assert m["CsrfHw"] == "b"
    assert list(m.keys()) == ["CSRFHW"]
    del m["CSRFHW"]
    assert "csrfhw" not in m


def test_tokens_prefer_the_literal_carrying_every_mandatory_key() -> None:
    html = (
        '<a href="/web/online.do?CSRFHW=be0d60f3">Mi cuenta</a>'
        '<script>var urlParam = "ATTRIBUTE_UUID=043E25F7&CSRFHW=be0d60f3" + "&username=u@nauta.com.cu";</script>'
    )
    result = extract_session_tokens_from_script(html)
    assert result.ok
    assert dict(result.value) == {
        "ATTRIBUTE_UUID": "043E25F7",
        "CSRFHW": "be0d60f3",
        "username": "u@nauta.com.cu",
    }


def test_url_path_before_query_is_ignored() -> None:
    result = extract_session_tokens_from_script(
        "<script>location.href = '/web/online.do?ATTRIBUTE_UUID=U9&CSRFHW=C9&loggerId=L9';</script>"
    )
    assert result.ok
    assert result.value["ATTRIBUTE_UUID"] == "U9"
    assert result.value["loggerId"] == "L9"


def test_partial_literal_is_completed_from_bare_assignments() -> None:
    html = '<a href="/web/online.do?CSRFHW=C1">x</a><script>var ATTRIBUTE_UUID=U1;</script>'
    result = extract_session_tokens_from_script(html)
    assert result.ok
    assert result.value["ATTRIBUTE_UUID"] == "U1"
    assert result.value["CSRFHW"] == "C1"
