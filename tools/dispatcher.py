import math
import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from base import ShopBackendBase
from config import MATCH_THRESHOLD
from config.settings import ChatbotConfig, ToolsConfig, settings
from errors import ChatbotError, ErrorKind, GuardrailDenied, NotFound, Unauthorized, ValidationError
from guardrails import Domain, GuardrailPolicy, default_policy, describe
from kb import best_match, extract_search_terms, is_general_query
from models import PendingConfirmation, ToolCallRequest, ToolResult
from tools.catalog import MUTATING, REQUIRED_ARGUMENTS, USER_SCOPED, ToolName, parse_tool_name
from tools.coupons import generate_coupon
from tools.shell import run_command

Handler = Callable[[Dict[str, Any], str], ToolResult]


def _int_arg(args: Dict[str, Any], key: str, default: Optional[int] = None) -> Optional[int]:
    value = args.get(key)
    if value is None or value == "":
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Argument '{key}' must be a number")
    if not math.isfinite(number):
        raise ValidationError(f"Argument '{key}' must be a finite number")
    if number != int(number):
        raise ValidationError(f"Argument '{key}' must be a whole number")
    return int(number)


def _missing(args: Dict[str, Any], tool: ToolName):
    return [k for k in REQUIRED_ARGUMENTS[tool] if args.get(k) is None or str(args.get(k)).strip() == ""]


class ToolDispatcher:
    """Executes catalog tools against the shop backend.

    Every outcome is a ToolResult: tool errors are reported as data, never raised.
    """

    def __init__(
        self,
        shop: ShopBackendBase,
        policy: Optional[GuardrailPolicy] = None,
        tools_cfg: Optional[ToolsConfig] = None,
        chatbot_cfg: Optional[ChatbotConfig] = None,
    ):
        self.shop = shop
        self.policy = policy or default_policy
        self.cfg = tools_cfg or settings.tools
        self.chatbot_cfg = chatbot_cfg or settings.chatbot
        self.logger = logging.getLogger("app")
        self._handlers: Dict[ToolName, Handler] = {
            ToolName.GET_PRODUCT_INFORMATION: self.get_product_information,
            ToolName.GET_USER_INFORMATION: self.get_user_information,
            ToolName.GET_BASKET: self.get_basket,
            ToolName.ADD_TO_BASKET: self.add_to_basket,
            ToolName.REMOVE_FROM_BASKET: self.remove_from_basket,
            ToolName.GENERATE_COUPON: self.generate_coupon,
            ToolName.EXECUTE_SQL_QUERY: self.execute_sql_query,
            ToolName.EXECUTE_LINUX_COMMAND: self.execute_linux_command,
        }
        missing = set(ToolName) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for tools: {sorted(t.value for t in missing)}")

    def log(self, msg: str, tool: str, user_id: str, level: str = "info"):
        extra = {"extra_data": {"tool": tool, "user_id": user_id, "component": "ToolDispatcher"}}
        getattr(self.logger, level)(msg, extra=extra)

    def invoke(self, name: str, arguments: Optional[Dict[str, Any]], caller_id: str) -> ToolResult:
        tool = parse_tool_name(name)
        if tool is None:
            self.log(f"Rejected unknown tool {name!r}", str(name), caller_id, "warning")
            return ToolResult.failure(ErrorKind.VALIDATION_ERROR, f"Unknown tool: {name}")

        args = dict(arguments or {})
        if tool in USER_SCOPED:
            # never trust a userId proposed by the model
            args["userId"] = str(caller_id)
        missing = _missing(args, tool)
        if missing:
            return ToolResult.failure(
                ErrorKind.VALIDATION_ERROR, f"Missing required argument(s): {', '.join(missing)}"
            )

        # mutating tools run exactly once per request
        verb = "Executing mutating tool" if tool in MUTATING else "Executing tool"
        self.log(f"{verb} {tool.value}", tool.value, caller_id)
        try:
            return self._handlers[tool](args, str(caller_id))
        except GuardrailDenied as e:
            self.log(f"Tool {tool.value} denied by guardrail: {e.reason}", tool.value, caller_id, "warning")
            return ToolResult.failure(e.kind, e.message, data={"reason": e.reason})
        except ChatbotError as e:
            self.log(f"Tool {tool.value} failed: {e.message}", tool.value, caller_id, "warning")
            return ToolResult.failure(e.kind, e.message)
        except SQLAlchemyError as e:
            self.logger.exception(
                f"Database error in tool {tool.value}",
                extra={"extra_data": {"tool": tool.value, "user_id": caller_id}},
            )
            return ToolResult.failure(ErrorKind.EXECUTION_FAILED, f"Error executing function {tool.value}: {e}")

    def _image_url(self, image: Optional[str]) -> Optional[str]:
        if not image:
            return None
        if image.startswith("http://") or image.startswith("https://"):
            return image
        return f"{self.chatbot_cfg.base_url.rstrip('/')}{self.chatbot_cfg.image_path}{image}"

    def _present(self, product: Dict[str, Any]) -> Dict[str, Any]:
        return {**product, "image": self._image_url(product.get("image"))}

    def _basket_snapshot(self, user_id: str) -> Dict[str, Any]:
        basket = self.shop.get_basket(user_id)
        if basket is None:
            return {"id": None, "products": [], "empty": True, "message": "Your basket is empty"}
        products = [self._present(p) for p in basket["products"]]
        return {
            "id": basket["id"],
            "products": products,
            "empty": not products,
            "message": f"Your basket has {len(products)} product(s)" if products else "Your basket is empty",
        }

    def search_products(self, query: str):
        if is_general_query(query):
            return self.shop.list_products(self.cfg.catalog_sample_size)
        terms = extract_search_terms(query)
        if not terms:
            return []
        return self.shop.search_products(terms, self.cfg.search_limit)

    def get_product_information(self, args: Dict[str, Any], caller_id: str) -> ToolResult:
        products = [self._present(p) for p in self.search_products(str(args["query"]))]
        return ToolResult.success({"products": products})

    def get_user_information(self, args: Dict[str, Any], caller_id: str) -> ToolResult:
        user = self.shop.get_user(args["userId"])
        if user is None:
            raise NotFound("User not found")
        return ToolResult.success(user)

    def get_basket(self, args: Dict[str, Any], caller_id: str) -> ToolResult:
        if self.shop.get_user(args["userId"]) is None:
            raise NotFound("User not found - could not retrieve basket")
        return ToolResult.success(self._basket_snapshot(args["userId"]))

    def _resolve_product(self, product_name: str):
        candidates = self.shop.search_products(
            extract_search_terms(product_name) or [product_name.lower()], self.cfg.search_limit
        )
        if not candidates:
            candidates = self.shop.list_products()
        return best_match(product_name, candidates)

    def add_to_basket(self, args: Dict[str, Any], caller_id: str) -> ToolResult:
        user_id = args["userId"]
        product_name = str(args["productName"]).strip()
        quantity = _int_arg(args, "quantity", 1)
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        product_id = _int_arg(args, "productId")
        if product_id is not None:
            product = self.shop.get_product(product_id)
            if product is None:
                raise NotFound("Product not found")
            match_score = 1.0
        else:
            match = self._resolve_product(product_name)
            if match is None:
                raise NotFound("No products are available")
            product, match_score = match

        if match_score < MATCH_THRESHOLD:
            pending = PendingConfirmation(
                candidate_action=ToolCallRequest(
                    name=ToolName.ADD_TO_BASKET.value,
                    arguments={"userId": user_id, "productName": product["name"], "productId": product["id"], "quantity": quantity},
                ),
                match_score=match_score,
                candidate={
                    "productId": product["id"],
                    "productName": product["name"],
                    "price": product["price"],
                    "quantity": quantity,
                    "matchScore": round(match_score, 2),
                    "message": f"Did you mean {product['name']}?",
                },
            )
            self.log(f"Low-confidence match for {product_name!r} ({match_score:.2f})", ToolName.ADD_TO_BASKET.value, caller_id)
            return ToolResult.confirm(pending)

        added = self.shop.add_basket_item(user_id, product["id"], quantity)
        return ToolResult.success({
            "success": True,
            "message": f"Added {quantity} x {product['name']} to basket",
            "basketId": added["basketId"],
            "matchScore": round(match_score, 2),
            "basket": self._basket_snapshot(user_id),
        })

    def remove_from_basket(self, args: Dict[str, Any], caller_id: str) -> ToolResult:
        user_id = args["userId"]
        product_id = _int_arg(args, "productId")
        quantity = _int_arg(args, "quantity", 1)
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        removed = self.shop.remove_basket_item(user_id, product_id, quantity)
        name = removed["product"]["name"]
        if removed["quantity"] == 0:
            message = f"Removed {name} from basket"
        else:
            message = f"Updated quantity of {name} to {removed['quantity']}"
        return ToolResult.success({
            "success": True,
            "message": message,
            "basketId": removed["basketId"],
            "basket": self._basket_snapshot(user_id),
        })

    def generate_coupon(self, args: Dict[str, Any], caller_id: str) -> ToolResult:
        try:
            discount = float(args["discount"])
        except (TypeError, ValueError):
            raise ValidationError("Argument 'discount' must be a number")
        if not math.isfinite(discount):
            raise ValidationError("Argument 'discount' must be a finite number")
        return ToolResult.success(
            generate_coupon(discount, self.cfg.coupon_min_discount, self.cfg.coupon_max_discount)
        )

    def execute_sql_query(self, args: Dict[str, Any], caller_id: str) -> ToolResult:
        query = str(args["query"]).strip()
        explanation = args.get("explanation")
        verdict = self.policy.evaluate(query, Domain.SQL)
        if not verdict.allowed:
            raise GuardrailDenied(
                f"This query cannot be executed for security reasons: {describe(verdict.reason)}.",
                reason=verdict.reason,
            )

        statement = query.rstrip(";").rstrip()
        if not statement.upper().startswith("UPDATE"):
            # the cap sits outside the statement so trailing comments or its own LIMIT cannot lift it
            statement = f"SELECT * FROM (\n{statement}\n) AS capped LIMIT {self.cfg.sql_row_limit}"

        result = self.shop.execute_sql(statement, self.cfg.sql_timeout_seconds)
        if "rows" in result:
            return ToolResult.success({
                "results": result["rows"],
                "rowCount": len(result["rows"]),
                "explanation": explanation,
            })
        return ToolResult.success({
            "message": "Update operation completed successfully",
            "affectedRows": result["affectedRows"],
            "explanation": explanation,
        })

    def execute_linux_command(self, args: Dict[str, Any], caller_id: str) -> ToolResult:
        command = str(args["command"])
        verdict = self.policy.evaluate(command, Domain.SHELL)
        if not verdict.allowed:
            raise GuardrailDenied(
                f"This command cannot be executed for security reasons: {describe(verdict.reason)}.",
                reason=verdict.reason,
            )
        if self.cfg.shell_requires_admin:
            user = self.shop.get_user(args["userId"])
            if user is None or user.get("role") != "admin":
                raise Unauthorized("Linux commands can only be executed by admin users")

        try:
            result = run_command(command, self.cfg.shell_timeout_seconds)
        except OSError as e:
            return ToolResult.failure(ErrorKind.EXECUTION_FAILED, f"Failed to execute Linux command: {e}")
        if result["timedOut"]:
            return ToolResult.failure(
                ErrorKind.EXECUTION_FAILED,
                f"Command timed out after {self.cfg.shell_timeout_seconds:g}s",
                data=result,
            )
        if result["exitCode"] != 0:
            return ToolResult.failure(
                ErrorKind.EXECUTION_FAILED,
                f"Command exited with status {result['exitCode']}",
                data={**result, "explanation": f"Command execution failed: {command}"},
            )
        return ToolResult.success({
            **result,
            "explanation": f"Command executed successfully: {command}",
            "message": "Command execution completed successfully",
        })
