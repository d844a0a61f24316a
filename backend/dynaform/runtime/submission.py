"""
提交流水线 - 校验 → before_submit → 网络提交 → after_submit → 完成回调

职责：
1. 校验全部可见字段，汇总错误为 ValidationError
2. before_submit 链式转换值（单个插件失败保留上一个成功值）
3. 声明了 api.submit 时发送请求（默认 POST，JSON 请求体），非2xx → SubmitError
4. 任何异常交给每个插件的 on_error 后重新抛出，表单值保持不变以便重试

测试要点：
- test_before_submit_failure_isolated: 抛异常的插件不阻断后续插件和网络提交
- test_validation_error_aggregates: 多字段错误一次性返回
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable

import httpx

from ..interfaces import RemoteLoadError, SubmitError, ValidationError
from ..models import ApiConfig, FieldState, FormContext, FormLifecycle
from ..plugins import PluginPipeline
from ..remote.transport import decode_response, send_request
from ..validation import RuleRegistry, validate_fields

logger = logging.getLogger(__name__)

CompletionCallback = Callable[..., Any]


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


class SubmissionPipeline:
    """提交流水线"""

    def __init__(self, pipeline: PluginPipeline, client: httpx.AsyncClient, rules: RuleRegistry):
        self.pipeline = pipeline
        self.client = client
        self.rules = rules

    async def submit(
        self,
        context: FormContext,
        states: dict[str, FieldState] | None = None,
        on_complete: CompletionCallback | None = None,
    ) -> Any:
        """
        执行提交

        Returns:
            接口响应（JSON 或文本）；未声明 api.submit 时为处理后的提交值

        Raises:
            ValidationError: 字段校验失败
            SubmitError: 接口请求失败或非2xx
        """
        self.pipeline.transition(FormLifecycle.SUBMITTING)
        try:
            values = context.values
            field_errors = validate_fields(context.config, values, self.rules, states)
            if field_errors:
                raise ValidationError(field_errors)

            values = await self.pipeline.before_submit(values)

            api = context.config.api
            if api is not None and api.submit:
                response = await self._send(api, values)
                await self.pipeline.after_submit(values, response)
                if on_complete is not None:
                    await _maybe_await(on_complete(values, response))
                logger.info(f"表单提交成功: {context.form_id}")
                return response

            if on_complete is not None:
                await _maybe_await(on_complete(values))
            return values

        except Exception as e:
            logger.error(f"表单提交失败: {context.form_id}: {e}")
            await self.pipeline.on_error(e)
            raise
        finally:
            if self.pipeline.state is FormLifecycle.SUBMITTING:
                self.pipeline.transition(FormLifecycle.ACTIVE)

    async def _send(self, api: ApiConfig, values: dict[str, Any]) -> Any:
        method = (api.method or "POST").upper()
        try:
            response = await send_request(
                self.client,
                method,
                api.submit,
                params=values if method == "GET" else None,
                headers=api.headers,
                body=values,
            )
        except RemoteLoadError as e:
            raise SubmitError(str(e)) from e

        if not response.is_success:
            raise SubmitError(
                f"Submit failed with status {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )
        return decode_response(response)
