"""事务提交后的邮件投递。

业务服务只返回待执行的邮件副作用（`InvitationEmail`），
路由层在 `commit()` 之后调用 `dispatch_effects` 投递。
投递失败只记录日志，不回滚已提交的数据，也不在请求内重试。

未配置 `RFI_SMTP_HOST` 时仅记录日志，不实际发信（开发/测试模式）。
"""

from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
import html
import logging
import smtplib
from typing import Iterable

from rfi_api.core.config import Settings, get_settings
from rfi_api.services.registration import login_url, registration_url

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    """单封邮件投递结果。"""

    success: bool
    error: str | None = None


@dataclass(frozen=True)
class InvitationEmail:
    """待提交后发送的注册邀请邮件。"""

    to_email: str
    to_name: str | None
    subject: str
    html_body: str
    # 邮件场景：access_approved/auto_approved/invitation。
    kind: str
    # 注册链接；收件人已注册时为空，正文改为登录入口。
    registration_url: str | None


_KIND_SUBJECTS = {
    "access_approved": "【RFI Tracker】项目访问申请已通过：{project}",
    "auto_approved": "【RFI Tracker】已自动开通项目访问：{project}",
    "invitation": "【RFI Tracker】邀请您加入项目：{project}",
}

_TOKEN_FOOTER = '<p style="color: #94a3b8; font-size: 12px;">该链接仅可使用一次，过期后请联系项目管理员重新获取。</p>'

_BODY_TEMPLATE = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <h2 style="color: #1e293b;">{heading}</h2>
    <p>{greeting}</p>
    <p>{intro}</p>
    {message_block}
    <p><a href="{url}">{url}</a></p>
    {footer}
</div>
"""


def build_registration_email(
    *,
    kind: str,
    to_email: str,
    to_name: str | None,
    project_name: str,
    token: str | None,
    inviter_name: str | None = None,
    message: str | None = None,
) -> InvitationEmail:
    """构造带注册链接的邮件副作用。"""
    register_url = registration_url(token) if token else None
    url = register_url or login_url()
    action = "请通过以下链接完成账号注册：" if token else "您已有账号，可直接登录查看项目："
    project_label = html.escape(project_name)
    if kind == "invitation":
        heading = "项目邀请"
        intro = f"{html.escape(inviter_name or '项目成员')} 邀请您以干系人身份加入项目「{project_label}」。"
    elif kind == "auto_approved":
        heading = "访问已开通"
        intro = f"您的邮箱域名与项目「{project_label}」现有干系人一致，访问已自动开通。"
    else:
        heading = "访问申请已通过"
        intro = f"您对项目「{project_label}」的访问申请已通过审核。"

    message_block = ""
    if message and message.strip():
        message_block = f"<blockquote>{html.escape(message.strip())}</blockquote>"

    body = _BODY_TEMPLATE.format(
        heading=heading,
        greeting=f"{html.escape(to_name or to_email)}，您好：",
        intro=intro + action,
        message_block=message_block,
        url=html.escape(url, quote=True),
        footer=_TOKEN_FOOTER if token else "",
    )
    return InvitationEmail(
        to_email=to_email,
        to_name=to_name,
        subject=_KIND_SUBJECTS.get(kind, _KIND_SUBJECTS["access_approved"]).format(project=project_name),
        html_body=body,
        kind=kind,
        registration_url=register_url,
    )


class EmailDispatcher:
    """邮件发送器，SMTP 未配置时退化为仅记录日志。"""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def is_configured(self) -> bool:
        return bool(self.settings.smtp_host)

    def send(self, to_email: str, subject: str, html_body: str, to_name: str | None = None) -> DispatchResult:
        """发送一封邮件，超时由 `smtp_timeout_seconds` 限定。"""
        if not self.is_configured():
            logger.info("email (log only): to=%s subject=%s", to_email, subject)
            return DispatchResult(success=True)

        try:
            self._send_smtp(to_email=to_email, to_name=to_name, subject=subject, html_body=html_body)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("email failed: to=%s error=%s", to_email, exc)
            return DispatchResult(success=False, error=str(exc)[:1000])

        logger.info("email sent: to=%s subject=%s", to_email, subject)
        return DispatchResult(success=True)

    def _send_smtp(self, *, to_email: str, to_name: str | None, subject: str, html_body: str) -> None:
        settings = self.settings
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = settings.smtp_sender
        msg["To"] = f"{to_name} <{to_email}>" if to_name else to_email
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=settings.smtp_timeout_seconds) as smtp:
            if settings.smtp_use_tls:
                smtp.starttls()
            if settings.smtp_username and settings.smtp_password:
                smtp.login(settings.smtp_username, settings.smtp_password)
            smtp.send_message(msg)


def dispatch_effects(
    effects: Iterable[InvitationEmail],
    dispatcher: EmailDispatcher | None = None,
) -> list[DispatchResult]:
    """在事务提交后逐条投递邮件副作用。"""
    sender = dispatcher or EmailDispatcher()
    results: list[DispatchResult] = []
    for effect in effects:
        result = sender.send(effect.to_email, effect.subject, effect.html_body, to_name=effect.to_name)
        if not result.success:
            logger.warning("post-commit email not delivered kind=%s to=%s", effect.kind, effect.to_email)
        results.append(result)
    return results
