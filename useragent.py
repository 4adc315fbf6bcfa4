import re
from typing import Dict, Mapping, Optional

_IP_HEADERS = (
    "x-forwarded-for",
    "cf-connecting-ip",
    "true-client-ip",
    "x-real-ip",
    "x-client-ip",
    "fastly-client-ip",
    "forwarded",
)

_IOS = re.compile(r"(iPhone|iPad).*OS\s([0-9_.]+)", re.I)
_ANDROID = re.compile(r"Android\s([0-9.]+)", re.I)
_WINDOWS = re.compile(r"Windows NT\s([0-9.]+)", re.I)
_MAC = re.compile(r"Mac OS X\s([0-9_.]+)", re.I)
_MODEL = re.compile(
    r"\b(iPhone|iPad|Pixel\s[\dA-Za-z]+|SM-[A-Z0-9-]+|SM[A-Z0-9-]+|Mi[- ]\w+|Redmi|OnePlus|HUAWEI|Huawei"
    r"|Nokia|OPPO|Vivo|Poco|MOTO|Moto[- ]\w+|XT[0-9]+|GT-[A-Z0-9]+)\b",
    re.I,
)
_MODEL_HINT = re.compile(r"\b(SM-|Pixel|Mi|Redmi|OnePlus|HUAWEI|OPPO|Vivo|Poco|MOTO|Moto)\b", re.I)


def client_ip(headers: Mapping[str, str], peer: Optional[str] = None) -> Optional[str]:
    """First address from the usual proxy headers, else the socket peer."""
    for name in _IP_HEADERS:
        value = headers.get(name)
        if not value:
            continue
        parts = [p.strip() for p in str(value).split(",") if p.strip()]
        if parts:
            return parts[0]
    return peer or None


def parse_user_agent(ua: Optional[str]) -> Dict[str, str]:
    """Best-effort OS, device type and device model from a User-Agent header."""
    if not ua or not isinstance(ua, str):
        return {}
    result = {"ua": ua}

    match = _IOS.search(ua)
    if match:
        result["os_name"] = "iOS"
        result["os_version"] = match.group(2).replace("_", ".")
        result["device_type"] = "tablet" if match.group(1).lower() == "ipad" else "mobile"
    else:
        match = _ANDROID.search(ua)
        if match:
            result["os_name"] = "Android"
            result["os_version"] = match.group(1)
            if re.search(r"mobile", ua, re.I):
                result["device_type"] = "mobile"
            elif re.search(r"tablet", ua, re.I):
                result["device_type"] = "tablet"
            else:
                result["device_type"] = "mobile"
        elif re.search(r"Windows NT", ua, re.I):
            result["os_name"] = "Windows"
            match = _WINDOWS.search(ua)
            if match:
                result["os_version"] = match.group(1)
            result["device_type"] = "desktop"
        elif re.search(r"Mac OS X|Macintosh", ua, re.I):
            result["os_name"] = "macOS"
            match = _MAC.search(ua)
            if match:
                result["os_version"] = match.group(1).replace("_", ".")
            result["device_type"] = "desktop"

    match = _MODEL.search(ua)
    if match:
        result["device_model"] = match.group(0)
    else:
        paren = re.search(r"\(([^)]+)\)", ua)
        if paren:
            for token in re.split(r"[;,)]", paren.group(1)):
                token = token.strip()
                if token and _MODEL_HINT.search(token):
                    result["device_model"] = token
                    break
    return result
